"""Tests for the PostgreSQL-backed job queue service.

Tests cover:
- Job enqueue with various parameters
- Job claiming and attempt counting
- Job completion and failure handling
- Exponential backoff retry logic
- Dead letter handling (max_attempts exceeded)
- Stale job cleanup
"""

import uuid
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.exc import SQLAlchemyError

from proofpack.db.models.base import JobStatus
from proofpack.db.models.jobs import Job
from proofpack.services.job_queue import (
    JobNotFoundError,
    JobQueueError,
    JobQueueService,
    JobType,
    compute_backoff_seconds,
)


@pytest.fixture
def mock_session():
    """Create a mock async session."""
    session = AsyncMock()
    session.add = MagicMock()
    session.execute = AsyncMock()
    session.flush = AsyncMock()
    return session


def returning(mock_session, value):
    """Configure the session to return `value` from scalar_one_or_none()."""
    mock_result = MagicMock()
    mock_result.scalar_one_or_none.return_value = value
    mock_session.execute.return_value = mock_result


class TestJobQueueServiceInit:
    """Tests for JobQueueService initialization."""

    def test_init_with_defaults(self):
        """Test service initializes with default values."""
        session = MagicMock()
        service = JobQueueService(session)

        assert service.session is session
        assert service.default_queue == "default"
        assert service.default_max_attempts == 3
        assert service.default_base_backoff == 60

    def test_init_with_custom_values(self):
        """Test service accepts custom configuration."""
        service = JobQueueService(
            MagicMock(),
            default_queue="notifications",
            default_max_attempts=5,
            default_base_backoff=30,
        )

        assert service.default_queue == "notifications"
        assert service.default_max_attempts == 5
        assert service.default_base_backoff == 30


class TestBackoff:
    """Tests for the retry delay."""

    def test_doubles_per_attempt(self):
        assert compute_backoff_seconds(60, 1) == 60
        assert compute_backoff_seconds(60, 2) == 120
        assert compute_backoff_seconds(60, 3) == 240

    def test_zero_attempts_uses_base(self):
        assert compute_backoff_seconds(30, 0) == 30


class TestJobEnqueue:
    """Tests for enqueue method."""

    @pytest.mark.asyncio
    async def test_enqueue_basic(self, mock_session):
        """Test basic job enqueueing."""
        service = JobQueueService(mock_session)

        async def set_job_id():
            job = mock_session.add.call_args[0][0]
            job.job_id = uuid.uuid4()

        mock_session.flush.side_effect = set_job_id

        job_id = await service.enqueue(
            job_type=JobType.NOTIFICATION_DELIVER,
            payload={"template_kind": "nda_accepted", "recipient": "user-1"},
        )

        assert job_id is not None
        mock_session.add.assert_called_once()
        mock_session.flush.assert_called_once()

        created_job = mock_session.add.call_args[0][0]
        assert created_job.job_type == "notification_deliver"
        assert created_job.status == JobStatus.PENDING
        assert created_job.payload_json["recipient"] == "user-1"
        assert created_job.queue == "default"
        assert created_job.priority == 100
        assert created_job.attempts == 0
        assert created_job.max_attempts == 3

    @pytest.mark.asyncio
    async def test_enqueue_with_all_options(self, mock_session):
        """Test enqueueing with all optional parameters."""
        service = JobQueueService(mock_session)
        run_at = datetime.now(UTC) + timedelta(hours=1)

        await service.enqueue(
            job_type="custom_job",
            payload={"key": "value"},
            run_at=run_at,
            queue="priority",
            priority=10,
            max_attempts=5,
            base_backoff_seconds=15,
            correlation_id="corr-123",
        )

        created_job = mock_session.add.call_args[0][0]
        assert created_job.job_type == "custom_job"
        assert created_job.run_at == run_at
        assert created_job.queue == "priority"
        assert created_job.priority == 10
        assert created_job.max_attempts == 5
        assert created_job.base_backoff_seconds == 15
        assert created_job.correlation_id == "corr-123"

    @pytest.mark.asyncio
    async def test_enqueue_database_error(self, mock_session):
        """Test enqueue wraps database errors."""
        service = JobQueueService(mock_session)
        mock_session.flush.side_effect = SQLAlchemyError("DB error")

        with pytest.raises(JobQueueError) as exc_info:
            await service.enqueue(job_type=JobType.EXPIRY_SWEEP)

        assert "Failed to enqueue job" in str(exc_info.value)


class TestJobClaim:
    """Tests for claim_job method."""

    @pytest.mark.asyncio
    async def test_claim_job_success(self, mock_session):
        """Test successful job claiming."""
        service = JobQueueService(mock_session)

        mock_job = MagicMock(spec=Job)
        mock_job.job_id = uuid.uuid4()
        mock_job.job_type = "notification_deliver"
        mock_job.status = JobStatus.PENDING
        mock_job.attempts = 0
        mock_job.max_attempts = 3
        returning(mock_session, mock_job)

        claimed_job = await service.claim_job("worker-1")

        assert claimed_job is mock_job
        assert mock_job.status == JobStatus.RUNNING
        assert mock_job.locked_by == "worker-1"
        assert mock_job.started_at is not None
        assert mock_job.attempts == 1
        mock_session.flush.assert_called_once()

    @pytest.mark.asyncio
    async def test_claim_job_none_available(self, mock_session):
        """Test claim returns None when no jobs available."""
        service = JobQueueService(mock_session)
        returning(mock_session, None)

        result = await service.claim_job("worker-1", queue="default", job_types=["expiry_sweep"])

        assert result is None
        mock_session.flush.assert_not_called()

    @pytest.mark.asyncio
    async def test_claim_job_database_error(self, mock_session):
        """Test claim wraps database errors."""
        service = JobQueueService(mock_session)
        mock_session.execute.side_effect = SQLAlchemyError("Connection lost")

        with pytest.raises(JobQueueError) as exc_info:
            await service.claim_job("worker-1")

        assert "Failed to claim job" in str(exc_info.value)


class TestJobComplete:
    """Tests for complete_job method."""

    @pytest.mark.asyncio
    async def test_complete_job_success(self, mock_session):
        """Test successful job completion."""
        service = JobQueueService(mock_session)
        job_id = uuid.uuid4()

        mock_job = MagicMock(spec=Job)
        mock_job.job_id = job_id
        mock_job.job_type = "expiry_sweep"
        returning(mock_session, mock_job)

        await service.complete_job(job_id, result={"packs_recomputed": 2})

        assert mock_job.status == JobStatus.COMPLETED
        assert mock_job.result_json == {"packs_recomputed": 2}
        assert mock_job.completed_at is not None
        assert mock_job.locked_at is None
        assert mock_job.locked_by is None
        mock_session.flush.assert_called_once()

    @pytest.mark.asyncio
    async def test_complete_job_not_found(self, mock_session):
        """Test complete raises error when job not found."""
        service = JobQueueService(mock_session)
        job_id = uuid.uuid4()
        returning(mock_session, None)

        with pytest.raises(JobNotFoundError) as exc_info:
            await service.complete_job(job_id)

        assert str(job_id) in str(exc_info.value)


class TestJobFail:
    """Tests for fail_job method."""

    @pytest.mark.asyncio
    async def test_fail_job_retry(self, mock_session):
        """Test failing a job schedules retry with backoff."""
        service = JobQueueService(mock_session)
        job_id = uuid.uuid4()

        mock_job = MagicMock(spec=Job)
        mock_job.job_id = job_id
        mock_job.job_type = "notification_deliver"
        mock_job.attempts = 1
        mock_job.max_attempts = 3
        mock_job.base_backoff_seconds = 60
        returning(mock_session, mock_job)

        will_retry = await service.fail_job(job_id, "Connection timeout")

        assert will_retry is True
        assert mock_job.status == JobStatus.PENDING
        assert mock_job.last_error == "Connection timeout"
        assert mock_job.locked_at is None
        assert mock_job.locked_by is None

    @pytest.mark.asyncio
    async def test_fail_job_exponential_backoff(self, mock_session):
        """Test exponential backoff calculation."""
        service = JobQueueService(mock_session)
        job_id = uuid.uuid4()

        mock_job = MagicMock(spec=Job)
        mock_job.job_id = job_id
        mock_job.job_type = "notification_deliver"
        mock_job.attempts = 2
        mock_job.max_attempts = 5
        mock_job.base_backoff_seconds = 60
        returning(mock_session, mock_job)

        now = datetime.now(UTC)
        await service.fail_job(job_id, "Error")

        # 60 * 2^1
        expected_run_at = now + timedelta(seconds=120)
        assert abs((mock_job.run_at - expected_run_at).total_seconds()) < 2

    @pytest.mark.asyncio
    async def test_fail_job_dead_letter(self, mock_session):
        """Test job moves to dead letter after max attempts."""
        service = JobQueueService(mock_session)
        job_id = uuid.uuid4()

        mock_job = MagicMock(spec=Job)
        mock_job.job_id = job_id
        mock_job.job_type = "notification_deliver"
        mock_job.attempts = 3
        mock_job.max_attempts = 3
        returning(mock_session, mock_job)

        will_retry = await service.fail_job(job_id, "Permanent failure")

        assert will_retry is False
        assert mock_job.status == JobStatus.FAILED
        assert mock_job.last_error == "Permanent failure"
        assert mock_job.completed_at is not None

    @pytest.mark.asyncio
    async def test_fail_job_not_found(self, mock_session):
        """Test fail raises error when job not found."""
        service = JobQueueService(mock_session)
        returning(mock_session, None)

        with pytest.raises(JobNotFoundError):
            await service.fail_job(uuid.uuid4(), "Error")


class TestQueueMaintenance:
    """Tests for pending counts and stale job cleanup."""

    @pytest.mark.asyncio
    async def test_get_pending_count(self, mock_session):
        service = JobQueueService(mock_session)
        mock_result = MagicMock()
        mock_result.scalar.return_value = 4
        mock_session.execute.return_value = mock_result

        count = await service.get_pending_count(queue="default", job_type="expiry_sweep")

        assert count == 4

    @pytest.mark.asyncio
    async def test_cleanup_stale_jobs(self, mock_session):
        """Test stale running jobs are reset."""
        service = JobQueueService(mock_session)
        mock_result = MagicMock()
        mock_result.scalars.return_value.all.return_value = [uuid.uuid4(), uuid.uuid4()]
        mock_session.execute.return_value = mock_result

        reset = await service.cleanup_stale_jobs(stale_threshold_seconds=300)

        assert reset == 2

    @pytest.mark.asyncio
    async def test_cleanup_database_error(self, mock_session):
        service = JobQueueService(mock_session)
        mock_session.execute.side_effect = SQLAlchemyError("Connection lost")

        with pytest.raises(JobQueueError):
            await service.cleanup_stale_jobs()
