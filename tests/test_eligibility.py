"""Tests for the buyer directory and introduction requests."""

import uuid

import pytest

from proofpack.core.errors import NotFoundError, StateConflictError, ValidationError
from proofpack.db.models.base import IntroductionStatus, PackStatus
from proofpack.db.models.introductions import IntroductionRequest
from proofpack.services.eligibility import EligibilityFilter
from proofpack.services.notifications import NotificationKind
from tests.factories import (
    BUYER_ID,
    OWNER_ID,
    audit_results,
    create_mock_session,
    make_pack,
    make_result,
    make_sme,
)


class TestListEligible:
    """Tests for the directory listing."""

    @pytest.mark.asyncio
    async def test_page(self):
        sme = make_sme(industry="Aerospace")
        packs = [
            make_pack(sme_id=sme.sme_id, status=PackStatus.APPROVED, overall_score=s)
            for s in (91, 77)
        ]
        session = create_mock_session(
            make_result(scalar=2),
            make_result(rows=[(p, sme) for p in packs]),
        )

        page = await EligibilityFilter(session).list_eligible(page=1, page_size=10)

        assert page.total == 2
        assert page.pages == 1
        assert [e.overall_score for e in page.items] == [91, 77]
        assert page.items[0].company_name == "Acme Fabrication Ltd"
        assert page.items[0].certifications == ["ISO 9001"]

    @pytest.mark.asyncio
    async def test_empty(self):
        session = create_mock_session(make_result(scalar=0), make_result(rows=[]))

        page = await EligibilityFilter(session).list_eligible()

        assert page.items == []
        assert page.pages == 0

    @pytest.mark.asyncio
    async def test_low_min_score_does_not_widen_listing(self):
        session = create_mock_session(make_result(scalar=0), make_result(rows=[]))

        await EligibilityFilter(session).list_eligible(min_score=10)

        count_stmt = session.execute.await_args_list[0].args[0]
        compiled = count_stmt.compile(compile_kwargs={"literal_binds": True})
        assert "overall_score >= 70" in str(compiled)
        assert "overall_score >= 10" not in str(compiled)

    @pytest.mark.asyncio
    async def test_invalid_paging(self):
        session = create_mock_session()

        with pytest.raises(ValidationError) as exc_info:
            await EligibilityFilter(session).list_eligible(page=0, page_size=500)

        assert set(exc_info.value.errors) == {"page", "page_size"}
        session.execute.assert_not_awaited()


class TestRequestIntroduction:
    """Tests for introduction requests."""

    @pytest.mark.asyncio
    async def test_eligible_pack(self):
        sme = make_sme()
        pack = make_pack(sme_id=sme.sme_id, status=PackStatus.APPROVED, overall_score=70)
        session = create_mock_session(make_result(scalar=pack), *audit_results())
        session.get.return_value = sme

        result = await EligibilityFilter(session).request_introduction(
            BUYER_ID,
            pack.proof_pack_id,
            "  Machined brackets for a satellite bus  ",
            timeline="Q3",
            preferred_contact_method="video",
        )

        introduction = result.introduction
        assert isinstance(introduction, IntroductionRequest)
        assert introduction.status is IntroductionStatus.PENDING
        assert introduction.score_at_request == 70
        assert introduction.project_description == "Machined brackets for a satellite bus"
        assert {e.recipient for e in result.events} == {OWNER_ID, BUYER_ID}
        assert all(e.kind is NotificationKind.INTRODUCTION_REQUESTED for e in result.events)
        assert result.events[0].params["company_name"] == sme.company_name

    @pytest.mark.asyncio
    async def test_score_dropped_below_threshold(self):
        pack = make_pack(status=PackStatus.APPROVED, overall_score=69)
        session = create_mock_session(make_result(scalar=pack))

        with pytest.raises(StateConflictError) as exc_info:
            await EligibilityFilter(session).request_introduction(
                BUYER_ID, pack.proof_pack_id, "Fasteners"
            )

        assert exc_info.value.current_state["overall_score"] == 69
        assert exc_info.value.current_state["required_score"] == 70
        session.add.assert_not_called()

    @pytest.mark.asyncio
    async def test_pack_not_approved(self):
        pack = make_pack(status=PackStatus.SUBMITTED, overall_score=95)
        session = create_mock_session(make_result(scalar=pack))

        with pytest.raises(StateConflictError):
            await EligibilityFilter(session).request_introduction(
                BUYER_ID, pack.proof_pack_id, "Fasteners"
            )

    @pytest.mark.asyncio
    async def test_unknown_pack(self):
        session = create_mock_session(make_result(scalar=None))

        with pytest.raises(NotFoundError):
            await EligibilityFilter(session).request_introduction(
                BUYER_ID, uuid.uuid4(), "Fasteners"
            )

    @pytest.mark.asyncio
    async def test_invalid_request(self):
        session = create_mock_session()

        with pytest.raises(ValidationError) as exc_info:
            await EligibilityFilter(session).request_introduction(
                BUYER_ID, uuid.uuid4(), " ", preferred_contact_method="fax"
            )

        assert set(exc_info.value.errors) == {"project_description", "preferred_contact_method"}
