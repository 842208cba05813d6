# ============================================================================
# NOTIFICATION DISPATCHER TESTS
# ============================================================================
# STATUS: Tests - Dedup and business rules for notifications
# PURPOSE: Verify notifications/dispatcher.py
# CREATED: 18 OCT 2026
# ============================================================================
"""
Notification Dispatcher Tests

Uses a recording sink and a mocked job reader; follow-up delays are set
to zero so navigation and refresh run on the next loop iteration.

Run with:
    pytest tests/test_dispatcher.py -v
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

from core.config import NotificationDefaults
from core.contracts import (
    ChangeType,
    JobStatus,
    NotificationKind,
    NotificationVariant,
    StepStatus,
)
from core.models import (
    ChangePayload,
    FollowUpAction,
    Job,
    JobChange,
    JobStep,
    JobWithSteps,
    StepChange,
    WorkflowError,
    WorkflowErrorChange,
)
from notifications import JobNotificationDispatcher, NotificationSink


SETTINGS = NotificationDefaults(running_duration_ms=15000, default_duration_ms=12000, follow_up_delay_ms=0)


class RecordingSink(NotificationSink):
    def __init__(self):
        self.shown = []
        self.navigations = []
        self.refreshes = 0

    async def show(self, notification):
        self.shown.append(notification)

    async def navigate_to_resource(self, resource_id):
        self.navigations.append(resource_id)

    async def refresh(self):
        self.refreshes += 1


STEP_NAMES = ["Duplicates Check", "Content Extracted", "AI Complete", "Database Save"]


def _steps(statuses, names=STEP_NAMES, metadata=None):
    steps = []
    for i, (name, status) in enumerate(zip(names, statuses), start=1):
        steps.append(JobStep(
            id=f"s{i}",
            job_id="job-1",
            step_name=name,
            step_order=i,
            status=status,
            metadata=(metadata or {}).get(name, {}),
        ))
    return steps


def _job(status=JobStatus.RUNNING, steps=None, user_id="user-1"):
    return JobWithSteps(
        id="job-1",
        user_id=user_id,
        workflow_name="Add Resource",
        status=status,
        steps=steps or [],
    )


def _dispatcher(job=None, reader_error=None):
    reader = MagicMock()
    if reader_error is not None:
        reader.get_job = AsyncMock(side_effect=reader_error)
    else:
        reader.get_job = AsyncMock(return_value=job)
    sink = RecordingSink()
    return JobNotificationDispatcher(reader, "user-1", sink, SETTINGS), sink, reader


def _step_event(step, old_status=None, synthetic=False):
    old = step.model_copy(update={"status": old_status}) if old_status is not None else None
    return StepChange(
        payload=ChangePayload[JobStep](event_type=ChangeType.UPDATE, new=step, old=old),
        is_synthetic=synthetic,
    )


def _job_event(event_type, job, old=None):
    return JobChange(payload=ChangePayload[Job](event_type=event_type, new=job.as_job(), old=old))


def _run(dispatcher, *events):
    async def run():
        results = [await dispatcher.handle(e) for e in events]
        await asyncio.sleep(0.01)
        await dispatcher.aclose()
        return results

    return asyncio.run(run())


# ============================================================================
# JOB EVENTS
# ============================================================================

class TestJobEvents:

    def test_job_created(self):
        dispatcher, sink, _ = _dispatcher()
        job = _job(status=JobStatus.PENDING)
        _run(dispatcher, _job_event(ChangeType.INSERT, job), _job_event(ChangeType.INSERT, job))
        assert len(sink.shown) == 1
        assert sink.shown[0].kind == NotificationKind.JOB_CREATED
        assert sink.shown[0].dedup_key == "job-1:job:created"

    def test_job_failed_once(self):
        dispatcher, sink, _ = _dispatcher()
        dispatcher.prime([_job(status=JobStatus.RUNNING)])
        failed = _job(status=JobStatus.FAILED)
        _run(dispatcher, _job_event(ChangeType.UPDATE, failed), _job_event(ChangeType.UPDATE, failed))
        assert len(sink.shown) == 1
        assert sink.shown[0].variant == NotificationVariant.DESTRUCTIVE

    def test_job_already_failed_when_loaded(self):
        dispatcher, sink, _ = _dispatcher()
        dispatcher.prime([_job(status=JobStatus.FAILED)])
        _run(dispatcher, _job_event(ChangeType.UPDATE, _job(status=JobStatus.FAILED)))
        assert sink.shown == []

    def test_other_users_job_ignored(self):
        dispatcher, sink, _ = _dispatcher()
        _run(dispatcher, _job_event(ChangeType.INSERT, _job(user_id="user-2")))
        assert sink.shown == []


# ============================================================================
# STEP EVENTS
# ============================================================================

class TestStepEvents:

    def test_live_and_polled_event_notify_once(self):
        steps = _steps([StepStatus.COMPLETED, StepStatus.RUNNING, StepStatus.PENDING, StepStatus.PENDING])
        dispatcher, sink, _ = _dispatcher(_job(steps=steps))
        live = _step_event(steps[1], StepStatus.PENDING)
        polled = _step_event(steps[1], StepStatus.PENDING, synthetic=True)
        results = _run(dispatcher, live, polled)
        assert results[1] is None
        assert len(sink.shown) == 1
        assert dispatcher.has_seen("job-1:s2:running")

    def test_running_step(self):
        steps = _steps([StepStatus.RUNNING, StepStatus.PENDING, StepStatus.PENDING, StepStatus.PENDING])
        dispatcher, sink, _ = _dispatcher(_job(steps=steps))
        _run(dispatcher, _step_event(steps[0], StepStatus.PENDING))
        shown = sink.shown[0]
        assert shown.description == "Running..."
        assert shown.duration_ms == 15000

    def test_completed_step_names_next(self):
        steps = _steps([StepStatus.COMPLETED, StepStatus.PENDING, StepStatus.PENDING, StepStatus.PENDING])
        dispatcher, sink, _ = _dispatcher(_job(steps=steps))
        _run(dispatcher, _step_event(steps[0], StepStatus.RUNNING))
        shown = sink.shown[0]
        assert shown.variant == NotificationVariant.SUCCESS
        assert shown.description == "Currently running step: Content Extracted"
        assert shown.duration_ms == 12000

    def test_failed_step(self):
        steps = _steps([StepStatus.FAILED, StepStatus.PENDING, StepStatus.PENDING, StepStatus.PENDING])
        steps[0].error_message = "Timeout fetching page"
        dispatcher, sink, _ = _dispatcher(_job(steps=steps))
        _run(dispatcher, _step_event(steps[0], StepStatus.RUNNING))
        shown = sink.shown[0]
        assert shown.variant == NotificationVariant.DESTRUCTIVE
        assert shown.description == "Timeout fetching page"

    def test_suppressed_when_job_failed(self):
        steps = _steps([StepStatus.FAILED, StepStatus.PENDING, StepStatus.PENDING, StepStatus.PENDING])
        dispatcher, sink, _ = _dispatcher(_job(status=JobStatus.FAILED, steps=steps))
        _run(dispatcher, _step_event(steps[0], StepStatus.RUNNING))
        assert sink.shown == []

    def test_unchanged_or_pending_status_ignored(self):
        steps = _steps([StepStatus.RUNNING, StepStatus.SKIPPED, StepStatus.PENDING, StepStatus.PENDING])
        dispatcher, sink, reader = _dispatcher(_job(steps=steps))
        _run(dispatcher, _step_event(steps[0], StepStatus.RUNNING), _step_event(steps[1], StepStatus.PENDING))
        assert sink.shown == []
        reader.get_job.assert_not_awaited()

    def test_not_owned_job_ignored(self):
        steps = _steps([StepStatus.RUNNING, StepStatus.PENDING, StepStatus.PENDING, StepStatus.PENDING])
        dispatcher, sink, _ = _dispatcher(_job(steps=steps, user_id="user-2"))
        _run(dispatcher, _step_event(steps[0], StepStatus.PENDING))
        assert sink.shown == []

    def test_fetch_failure_releases_key(self):
        steps = _steps([StepStatus.RUNNING, StepStatus.PENDING, StepStatus.PENDING, StepStatus.PENDING])
        dispatcher, sink, reader = _dispatcher(reader_error=ConnectionError("api down"))
        event = _step_event(steps[0], StepStatus.PENDING)

        async def run():
            first = await dispatcher.handle(event)
            reader.get_job = AsyncMock(return_value=_job(steps=steps))
            second = await dispatcher.handle(event)
            await dispatcher.aclose()
            return first, second

        first, second = asyncio.run(run())
        assert first is None
        assert second is not None
        assert len(sink.shown) == 1

    def test_last_step_completes(self):
        steps = _steps([StepStatus.COMPLETED, StepStatus.SKIPPED, StepStatus.COMPLETED, StepStatus.COMPLETED])
        dispatcher, sink, _ = _dispatcher(_job(status=JobStatus.COMPLETED, steps=steps))
        _run(dispatcher, _step_event(steps[3], StepStatus.RUNNING))
        shown = sink.shown[0]
        assert shown.description == "Resource successfully added to your collection"
        assert shown.follow_up.action == FollowUpAction.REFRESH
        assert sink.refreshes == 1


# ============================================================================
# DUPLICATE HANDLING
# ============================================================================

DUPLICATE_NAMES = ["Duplicates Check", "Handle Duplicates: Same User", "AI Complete", "Database Save"]
OTHER_NAMES = ["Duplicates Check", "Handle Duplicates: Different User", "AI Complete", "Database Save"]


class TestDuplicates:

    def test_same_user_duplicate(self):
        steps = _steps(
            [StepStatus.COMPLETED, StepStatus.COMPLETED, StepStatus.PENDING, StepStatus.PENDING],
            names=DUPLICATE_NAMES,
            metadata={"Handle Duplicates: Same User": {"reference_id": 42, "reference_title": "Intro to Go"}},
        )
        dispatcher, sink, _ = _dispatcher(_job(steps=steps))
        # Live payload may arrive without metadata; the fetched row carries it
        bare = steps[1].model_copy(update={"metadata": {}})
        _run(dispatcher, _step_event(bare, StepStatus.RUNNING))
        shown = sink.shown[0]
        assert shown.title == "Resource Already Available"
        assert shown.variant == NotificationVariant.PRIMARY
        assert "Intro to Go" in shown.description
        assert shown.follow_up.action == FollowUpAction.NAVIGATE_TO_RESOURCE
        assert sink.navigations == ["42"]

    def test_same_user_duplicate_without_reference(self):
        steps = _steps(
            [StepStatus.COMPLETED, StepStatus.COMPLETED, StepStatus.PENDING, StepStatus.PENDING],
            names=DUPLICATE_NAMES,
        )
        dispatcher, sink, _ = _dispatcher(_job(steps=steps))
        _run(dispatcher, _step_event(steps[1], StepStatus.RUNNING))
        assert sink.shown[0].follow_up is None
        assert sink.navigations == []

    def test_other_user_duplicate_completed_is_silent(self):
        steps = _steps(
            [StepStatus.COMPLETED, StepStatus.COMPLETED, StepStatus.PENDING, StepStatus.PENDING],
            names=OTHER_NAMES,
        )
        dispatcher, sink, _ = _dispatcher(_job(steps=steps))
        results = _run(dispatcher, _step_event(steps[1], StepStatus.RUNNING))
        assert results == [None]
        assert sink.shown == []

    def test_other_user_duplicate_failed(self):
        steps = _steps(
            [StepStatus.COMPLETED, StepStatus.FAILED, StepStatus.PENDING, StepStatus.PENDING],
            names=OTHER_NAMES,
        )
        steps[1].error_message = "internal detail"
        dispatcher, sink, _ = _dispatcher(_job(steps=steps))
        _run(dispatcher, _step_event(steps[1], StepStatus.RUNNING))
        assert sink.shown[0].description == "Failed to process resource"


# ============================================================================
# WORKFLOW ERRORS
# ============================================================================

class TestWorkflowErrors:

    def _event(self, **overrides):
        fields = dict(
            id="err-1",
            user_id="user-1",
            workflow_name="Add Resource",
            error_message="Provider returned 502",
            error_node="Basic LLM Chain1",
        )
        fields.update(overrides)
        return WorkflowErrorChange(
            payload=ChangePayload[WorkflowError](event_type=ChangeType.INSERT, new=WorkflowError(**fields)),
        )

    def test_error_labelled_by_node(self):
        dispatcher, sink, _ = _dispatcher()
        event = self._event()
        _run(dispatcher, event, event)
        assert len(sink.shown) == 1
        assert sink.shown[0].title == "Workflow Error: AI Model"
        assert sink.shown[0].dedup_key == "error:err-1"

    def test_error_without_node(self):
        dispatcher, sink, _ = _dispatcher()
        _run(dispatcher, self._event(error_node=None))
        assert sink.shown[0].title == "Workflow Error: Node Failed"

    def test_other_users_error_ignored(self):
        dispatcher, sink, _ = _dispatcher()
        _run(dispatcher, self._event(user_id="user-2"))
        assert sink.shown == []


class TestSinkFailures:

    def test_sink_error_logged_not_raised(self):
        reader = MagicMock()
        sink = MagicMock(spec=NotificationSink)
        sink.show = AsyncMock(side_effect=RuntimeError("display gone"))
        dispatcher = JobNotificationDispatcher(reader, "user-1", sink, SETTINGS)
        results = _run(dispatcher, _job_event(ChangeType.INSERT, _job(status=JobStatus.PENDING)))
        assert results[0] is not None
        sink.show.assert_awaited_once()
