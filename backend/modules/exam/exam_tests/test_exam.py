# -*- coding: utf-8 -*-
"""
考试编辑模块测试
覆盖：校验引擎、总分汇总、生命周期守卫、题目替换、编辑会话、向导控制器、会话服务
"""
from datetime import datetime, timedelta

import pytest
from pydantic import ValidationError

from core.errors import BusinessException, ErrorCode, NotFoundException
from core.events import Events
from modules.exam.exam_client import BackendError, parse_exam_payload
from modules.exam.exam_lifecycle import (
    ConfirmationPrompt, ExamLifecycleGuard, LifecycleViolation, UserAbortedConfirmation,
)
from modules.exam.exam_marks import apply_total_marks, compute_total_marks
from modules.exam.exam_reconcile import QuestionReconciler
from modules.exam.exam_schemas import (
    ExamFormData, ExamFormPatch, ExamUpdate, QuestionType, SubmitConfirmations,
)
from modules.exam.exam_services import (
    REFERENCE_LOAD_FAILED, ExamEditService, WizardSessionStore, preset_confirmations,
)
from modules.exam.exam_validation import (
    STEP_QUESTIONS, STEP_SETTINGS, validate_question, validate_settings, validate_step,
)
from modules.exam.exam_wizard import (
    LAST_STEP, SubmitOutcome, WizardController, WizardSession, WizardStep,
)
from modules.exam.exam_tests.exam_conftest import (
    FakeExamBackend, confirm_with, make_exam_payload, make_question,
)


def load_exam(**kwargs):
    return parse_exam_payload(make_exam_payload(**kwargs))


def session_at_last_step(**kwargs) -> WizardSession:
    session = WizardSession(load_exam(**kwargs))
    session.current_step = LAST_STEP
    return session


# ==================== 校验引擎测试 ====================
class TestValidation:
    def test_title_required(self):
        session = WizardSession(load_exam())
        session.update_form(ExamFormPatch(title="   "))
        assert WizardController(session).advance() is False
        assert session.current_step == WizardStep.BASIC
        assert session.errors == {"title": "Title is required"}

    def test_end_before_start(self):
        session = WizardSession(load_exam())
        session.update_form(ExamFormPatch(
            start_time=datetime(2025, 1, 1, 10, 0),
            end_time=datetime(2025, 1, 1, 9, 0),
        ))
        session.current_step = WizardStep.SCHEDULING
        assert WizardController(session).advance() is False
        assert session.errors == {"endTime": "End time must be after start time"}

    def test_equal_times_rejected(self):
        form = ExamFormData(start_time=datetime(2025, 1, 1, 10, 0), end_time=datetime(2025, 1, 1, 10, 0))
        errors = validate_step(2, form, [])
        assert errors["endTime"] == "End time must be after start time"

    def test_scheduling_required_fields(self):
        form = ExamFormData(duration=0)
        errors = validate_step(2, form, [])
        assert errors == {
            "startTime": "Start time is required",
            "endTime": "End time is required",
            "duration": "Duration must be greater than 0",
        }

    def test_passing_exceeds_total(self):
        form = ExamFormData(passing_marks=50, total_marks=40, max_attempts=1)
        assert validate_settings(form, []) == {"passingMarks": "Passing marks cannot exceed total marks"}

    def test_passing_not_compared_when_total_zero(self):
        form = ExamFormData(passing_marks=50, total_marks=0, max_attempts=1)
        assert validate_settings(form, []) == {}

    def test_negative_passing_and_attempts(self):
        form = ExamFormData(passing_marks=-1, total_marks=10, max_attempts=0)
        errors = validate_step(STEP_SETTINGS, form, [])
        assert errors["passingMarks"] == "Passing marks must be 0 or greater"
        assert errors["maxAttempts"] == "Maximum attempts must be at least 1"

    def test_questions_required(self):
        assert validate_step(STEP_QUESTIONS, ExamFormData(), []) == {"questions": "Add at least one question"}
        assert validate_step(STEP_QUESTIONS, ExamFormData(), [make_question()]) == {}

    def test_validation_is_pure(self):
        form = ExamFormData(title="", duration=-5, passing_marks=99, total_marks=10, max_attempts=1)
        before = form.model_dump()
        first = [validate_step(step, form, []) for step in range(1, 5)]
        second = [validate_step(step, form, []) for step in range(1, 5)]
        assert first == second
        assert form.model_dump() == before

    def test_unknown_step(self):
        with pytest.raises(ValueError):
            validate_step(5, ExamFormData(), [])

    def test_question_editor_rules(self):
        assert validate_question(make_question()) is None
        assert validate_question(make_question(text="  ")) == "Question text is required"
        single_option = make_question(options=[{"option_text": "A", "is_correct": True}])
        assert validate_question(single_option) == "MCQ must have at least 2 options and one correct answer"
        no_correct = make_question(options=[{"option_text": "A"}, {"option_text": "B"}])
        assert validate_question(no_correct) is not None
        short = make_question(question_type=QuestionType.SHORT_ANSWER, options=[])
        assert validate_question(short) is None


# ==================== 总分测试 ====================
class TestMarks:
    def test_empty_is_zero(self):
        assert compute_total_marks([]) == 0.0

    def test_sum(self):
        assert compute_total_marks([make_question(marks=2.5), make_question(marks=3)]) == 5.5

    def test_apply_overrides_form(self):
        form = ExamFormData(total_marks=999)
        apply_total_marks(form, [make_question(marks=4)])
        assert form.total_marks == 4.0

    def test_total_follows_question_edits(self):
        session = WizardSession(load_exam(question_marks=[5, 5], totalMarks=123))
        assert session.form.total_marks == 10

        session.add_question(make_question(marks=7.5))
        assert session.form.total_marks == 17.5

        session.update_question(0, make_question(marks=1))
        assert session.form.total_marks == 13.5

        session.delete_question(2)
        assert session.form.total_marks == 6

        session.delete_question(0)
        session.delete_question(0)
        assert session.form.total_marks == 0


# ==================== 生命周期守卫测试 ====================
class TestLifecycleGuard:
    @pytest.mark.asyncio
    async def test_completed_is_rejected_without_prompt(self):
        confirm = confirm_with()
        with pytest.raises(LifecycleViolation) as exc_info:
            await ExamLifecycleGuard(confirm).clear_submit(load_exam(status="COMPLETED"))
        assert exc_info.value.code == ErrorCode.EXAM_COMPLETED
        assert confirm.prompts == []

    @pytest.mark.asyncio
    async def test_draft_passes_silently(self):
        confirm = confirm_with()
        decision = await ExamLifecycleGuard(confirm).clear_submit(load_exam())
        assert decision.reconcile_questions is True
        assert confirm.prompts == []

    @pytest.mark.asyncio
    async def test_active_confirmed(self):
        confirm = confirm_with(True)
        decision = await ExamLifecycleGuard(confirm).clear_submit(load_exam(status="ACTIVE"))
        assert decision.reconcile_questions is True
        assert decision.confirmed == [ConfirmationPrompt.ACTIVE_EXAM]

    @pytest.mark.asyncio
    async def test_active_cancelled(self):
        with pytest.raises(UserAbortedConfirmation) as exc_info:
            await ExamLifecycleGuard(confirm_with(False)).clear_submit(load_exam(status="ACTIVE"))
        assert exc_info.value.prompt == ConfirmationPrompt.ACTIVE_EXAM

    @pytest.mark.asyncio
    async def test_active_with_attempts_asks_both(self):
        confirm = confirm_with(True, True)
        decision = await ExamLifecycleGuard(confirm).clear_submit(load_exam(status="ACTIVE", attempts=2))
        assert confirm.prompts == [ConfirmationPrompt.ACTIVE_EXAM, ConfirmationPrompt.EXISTING_ATTEMPTS]
        assert decision.reconcile_questions is False

    @pytest.mark.asyncio
    async def test_second_prompt_cancel_aborts(self):
        with pytest.raises(UserAbortedConfirmation) as exc_info:
            await ExamLifecycleGuard(confirm_with(True, False)).clear_submit(load_exam(status="ACTIVE", attempts=2))
        assert exc_info.value.prompt == ConfirmationPrompt.EXISTING_ATTEMPTS

    def test_prompt_messages(self):
        assert "currently active" in ConfirmationPrompt.ACTIVE_EXAM.message
        assert "student attempts" in ConfirmationPrompt.EXISTING_ATTEMPTS.message


# ==================== 题目替换测试 ====================
class TestReconciliation:
    @pytest.mark.asyncio
    async def test_replace_all_removes_then_adds(self):
        backend = FakeExamBackend()
        exam = load_exam(question_marks=[1, 2, 3])
        current = [q.as_data() for q in exam.questions]

        report = await QuestionReconciler(backend).replace_all(exam.id, exam.questions, current)

        assert report.ok
        assert report.removed == ["q1", "q2", "q3"]
        assert report.added == 3
        assert backend.call_names() == ["remove_question"] * 3 + ["add_question"] * 3

    @pytest.mark.asyncio
    async def test_adds_follow_order_index(self):
        backend = FakeExamBackend()
        current = [make_question("second", order_index=1), make_question("first", order_index=0)]
        await QuestionReconciler(backend).replace_all("exam-1", [], current)
        assert [q.question_text for q in backend.added] == ["first", "second"]

    @pytest.mark.asyncio
    async def test_partial_failures_continue(self):
        backend = FakeExamBackend()
        backend.fail_remove_ids = {"q1"}
        backend.fail_add_positions = {0}
        exam = load_exam()
        current = [q.as_data() for q in exam.questions]

        report = await QuestionReconciler(backend).replace_all(exam.id, exam.questions, current)

        assert not report.ok
        assert report.removed == ["q2"]
        assert report.added == 1
        assert [(f.action, f.ref) for f in report.failures] == [("remove", "q1"), ("add", "0")]
        assert backend.call_names().count("remove_question") == 2
        assert backend.call_names().count("add_question") == 2


# ==================== 编辑会话测试 ====================
class TestWizardSession:
    def test_initial_state(self):
        session = WizardSession(load_exam())
        assert session.current_step == WizardStep.BASIC
        assert session.form.title == "Midterm Algebra"
        assert [q.order_index for q in session.questions] == [0, 1]
        assert session.errors == {}

    def test_view(self):
        view = WizardSession(load_exam(attempts=1)).to_view()
        assert view["currentStep"] == 1
        assert view["form"]["startTime"] == "2025-01-01T10:00"
        assert view["form"]["totalMarks"] == 10
        assert view["flags"]["questionsReadOnly"] is True
        assert [s["title"] for s in view["steps"]] == ["Basic Details", "Scheduling", "Settings", "Questions"]

    def test_update_form(self):
        session = WizardSession(load_exam())
        session.update_form(ExamFormPatch(description=None, shuffle_questions=True, max_attempts=3))
        assert session.form.description == ""
        assert session.form.shuffle_questions is True
        assert session.form.max_attempts == 3
        assert session.form.title == "Midterm Algebra"

    def test_patch_rejects_read_only_fields(self):
        with pytest.raises(ValidationError):
            ExamFormPatch.model_validate({"totalMarks": 100})
        with pytest.raises(ValidationError):
            ExamFormPatch.model_validate({"subjectId": "sub-2"})

    def test_move_question(self):
        session = WizardSession(load_exam(question_marks=[1, 2, 3]))
        session.move_question(2, "up")
        assert [q.marks for q in session.questions] == [1, 3, 2]
        assert [q.order_index for q in session.questions] == [0, 1, 2]
        assert session.form.total_marks == 6

        session.move_question(0, "up")
        session.move_question(2, "down")
        assert [q.marks for q in session.questions] == [1, 3, 2]
        assert session.form.total_marks == 6

    def test_invalid_question_rejected(self):
        session = WizardSession(load_exam())
        with pytest.raises(BusinessException) as exc_info:
            session.add_question(make_question(text=""))
        assert exc_info.value.code == ErrorCode.EXAM_QUESTION_INVALID
        assert len(session.questions) == 2

    def test_index_out_of_range(self):
        session = WizardSession(load_exam())
        with pytest.raises(BusinessException) as exc_info:
            session.delete_question(5)
        assert exc_info.value.code == ErrorCode.INVALID_OPERATION

    def test_questions_read_only_with_attempts(self):
        session = WizardSession(load_exam(attempts=3))
        for action in (
            lambda: session.add_question(make_question()),
            lambda: session.update_question(0, make_question()),
            lambda: session.delete_question(0),
            lambda: session.move_question(0, "down"),
        ):
            with pytest.raises(BusinessException) as exc_info:
                action()
            assert exc_info.value.code == ErrorCode.EXAM_QUESTIONS_READ_ONLY
        assert len(session.questions) == 2

    def test_completed_exam_rejects_edits(self):
        session = WizardSession(load_exam(status="COMPLETED"))
        for action in (
            lambda: session.update_form(ExamFormPatch(title="Renamed")),
            lambda: session.add_question(make_question()),
            lambda: session.update_question(0, make_question()),
            lambda: session.delete_question(0),
            lambda: session.move_question(0, "down"),
        ):
            with pytest.raises(LifecycleViolation) as exc_info:
                action()
            assert exc_info.value.code == ErrorCode.EXAM_COMPLETED
        assert session.form.title == "Midterm Algebra"
        assert [q.id for q in session.questions] == ["q1", "q2"]

    def test_completed_exam_still_navigates(self):
        session = WizardSession(load_exam(status="COMPLETED"))
        assert WizardController(session).advance() is True
        assert session.current_step == WizardStep.SCHEDULING


# ==================== 向导控制器测试 ====================
class TestWizardController:
    def test_advance_through_all_steps(self):
        session = WizardSession(load_exam())
        controller = WizardController(session)
        for expected in (WizardStep.SCHEDULING, WizardStep.SETTINGS, WizardStep.QUESTIONS):
            assert controller.advance() is True
            assert session.current_step == expected
        assert controller.advance() is True
        assert session.current_step == WizardStep.QUESTIONS

    def test_retreat_skips_validation(self):
        session = WizardSession(load_exam())
        session.current_step = WizardStep.SCHEDULING
        session.update_form(ExamFormPatch(duration=0))
        controller = WizardController(session)
        assert controller.retreat() == WizardStep.BASIC
        assert controller.retreat() == WizardStep.BASIC

    @pytest.mark.asyncio
    async def test_submit_draft(self):
        backend = FakeExamBackend()
        session = session_at_last_step()
        session.add_question(make_question(marks=3))

        result = await WizardController(session, backend, confirm_with()).submit()

        assert result.outcome == SubmitOutcome.UPDATED
        assert result.message == "Exam updated successfully"
        assert result.questions_updated is True
        assert backend.call_names() == ["update_exam"] + ["remove_question"] * 2 + ["add_question"] * 3
        assert backend.updates[0].total_marks == 13
        assert session.submitting is False

    @pytest.mark.asyncio
    async def test_submit_only_on_last_step(self):
        session = WizardSession(load_exam())
        with pytest.raises(BusinessException) as exc_info:
            await WizardController(session, FakeExamBackend(), confirm_with()).submit()
        assert exc_info.value.code == ErrorCode.INVALID_OPERATION

    @pytest.mark.asyncio
    async def test_submit_revalidates(self):
        backend = FakeExamBackend()
        session = session_at_last_step()
        session.delete_question(0)
        session.delete_question(0)

        result = await WizardController(session, backend, confirm_with()).submit()

        assert result.outcome == SubmitOutcome.INVALID
        assert result.errors == {"questions": "Add at least one question"}
        assert backend.calls == []

    @pytest.mark.asyncio
    async def test_submit_rechecks_passing_against_new_total(self):
        backend = FakeExamBackend()
        session = session_at_last_step()
        session.update_form(ExamFormPatch(passing_marks=9))
        session.delete_question(0)
        assert session.form.total_marks == 5

        result = await WizardController(session, backend, confirm_with()).submit()

        assert result.outcome == SubmitOutcome.INVALID
        assert result.errors == {"passingMarks": "Passing marks cannot exceed total marks"}
        assert session.current_step == WizardStep.SETTINGS
        assert backend.calls == []

    @pytest.mark.asyncio
    async def test_submit_rechecks_earlier_steps(self):
        backend = FakeExamBackend()
        session = session_at_last_step()
        session.update_form(ExamFormPatch(title="   ", duration=0, max_attempts=0))

        result = await WizardController(session, backend, confirm_with()).submit()

        assert result.outcome == SubmitOutcome.INVALID
        assert result.errors == {
            "title": "Title is required",
            "duration": "Duration must be greater than 0",
            "maxAttempts": "Maximum attempts must be at least 1",
        }
        assert session.current_step == WizardStep.BASIC
        assert session.errors == result.errors
        assert backend.calls == []

    @pytest.mark.asyncio
    async def test_active_confirmed_updates(self):
        backend = FakeExamBackend()
        result = await WizardController(session_at_last_step(status="ACTIVE"), backend, confirm_with(True)).submit()
        assert result.outcome == SubmitOutcome.UPDATED
        assert "update_exam" in backend.call_names()

    @pytest.mark.asyncio
    async def test_active_cancelled_makes_no_calls(self):
        backend = FakeExamBackend()
        result = await WizardController(session_at_last_step(status="ACTIVE"), backend, confirm_with(False)).submit()
        assert result.outcome == SubmitOutcome.ABORTED
        assert backend.calls == []

    @pytest.mark.asyncio
    async def test_attempts_prompt_cancelled_makes_no_calls(self):
        backend = FakeExamBackend()
        confirm = confirm_with(True, False)
        session = session_at_last_step(status="ACTIVE", attempts=2)

        result = await WizardController(session, backend, confirm).submit()

        assert result.outcome == SubmitOutcome.ABORTED
        assert confirm.prompts == [ConfirmationPrompt.ACTIVE_EXAM, ConfirmationPrompt.EXISTING_ATTEMPTS]
        assert backend.calls == []

    @pytest.mark.asyncio
    async def test_attempts_skip_question_replacement(self):
        backend = FakeExamBackend()
        session = session_at_last_step(attempts=3)
        session.update_form(ExamFormPatch(title="Midterm Algebra (revised)"))

        result = await WizardController(session, backend, confirm_with(True)).submit()

        assert result.outcome == SubmitOutcome.UPDATED
        assert result.questions_updated is False
        assert result.reconciliation is None
        assert backend.call_names() == ["update_exam"]
        assert backend.updates[0].title == "Midterm Algebra (revised)"

    @pytest.mark.asyncio
    async def test_completed_makes_no_calls(self):
        backend = FakeExamBackend()
        with pytest.raises(LifecycleViolation):
            await WizardController(session_at_last_step(status="COMPLETED"), backend, confirm_with()).submit()
        assert backend.calls == []

    @pytest.mark.asyncio
    async def test_update_failure_skips_questions(self):
        backend = FakeExamBackend()
        backend.fail_update = True
        session = session_at_last_step()
        with pytest.raises(BackendError):
            await WizardController(session, backend, confirm_with()).submit()
        assert backend.call_names() == ["update_exam"]
        assert session.submitting is False

    @pytest.mark.asyncio
    async def test_concurrent_submit_rejected(self):
        session = session_at_last_step()
        session.submitting = True
        with pytest.raises(BusinessException) as exc_info:
            await WizardController(session, FakeExamBackend(), confirm_with()).submit()
        assert exc_info.value.code == ErrorCode.RESOURCE_CONFLICT

    @pytest.mark.asyncio
    async def test_submit_requires_backend(self):
        with pytest.raises(RuntimeError):
            await WizardController(session_at_last_step()).submit()


# ==================== 更新请求体测试 ====================
class TestExamUpdate:
    def test_payload(self):
        session = WizardSession(load_exam())
        payload = ExamUpdate.from_form(session.form).to_payload()
        assert payload["startTime"] == "2025-01-01T10:00:00.000Z"
        assert payload["endTime"] == "2025-01-01T12:00:00.000Z"
        assert payload["totalMarks"] == 10
        assert payload["allowReview"] is True
        for key in ("subjectId", "classId", "type"):
            assert key not in payload

    def test_none_fields_omitted(self):
        payload = ExamUpdate(title="Only title").to_payload()
        assert payload == {"title": "Only title"}


# ==================== 会话服务测试 ====================
class TestExamEditService:
    @pytest.mark.asyncio
    async def test_open_session(self, recorded_events):
        store = WizardSessionStore(ttl_minutes=30)
        session = await ExamEditService.open_session(FakeExamBackend(), "exam-1", store)

        assert ExamEditService.get_session(session.id, store) is session
        assert [s.name for s in session.subjects] == ["Mathematics"]
        assert session.notices == []
        assert recorded_events.of(Events.EXAM_SESSION_OPENED)[-1].data["exam_id"] == "exam-1"

    @pytest.mark.asyncio
    async def test_reference_failure_is_a_notice(self):
        backend = FakeExamBackend()
        backend.fail_references = True
        session = await ExamEditService.open_session(backend, "exam-1", WizardSessionStore())
        assert session.subjects == [] and session.classes == []
        assert session.notices == [REFERENCE_LOAD_FAILED]

    @pytest.mark.asyncio
    async def test_missing_exam(self):
        with pytest.raises(BackendError) as exc_info:
            await ExamEditService.open_session(FakeExamBackend(), "missing", WizardSessionStore())
        assert exc_info.value.code == ErrorCode.RESOURCE_NOT_FOUND

    def test_unknown_session(self):
        with pytest.raises(NotFoundException) as exc_info:
            ExamEditService.get_session("nope", WizardSessionStore())
        assert exc_info.value.code == ErrorCode.WIZARD_SESSION_NOT_FOUND

    @pytest.mark.asyncio
    async def test_submit_closes_session(self, recorded_events):
        store = WizardSessionStore()
        backend = FakeExamBackend()
        session = await ExamEditService.open_session(backend, "exam-1", store)
        session.current_step = LAST_STEP

        result = await ExamEditService.submit(session, backend, confirm_with(), store)

        assert result.outcome == SubmitOutcome.UPDATED
        assert len(store) == 0
        assert recorded_events.of(Events.EXAM_UPDATED)
        reconciled = recorded_events.of(Events.EXAM_QUESTIONS_RECONCILED)[-1]
        assert reconciled.data["added"] == 2
        assert recorded_events.of(Events.EXAM_SESSION_CLOSED)

    @pytest.mark.asyncio
    async def test_aborted_keeps_session(self, recorded_events):
        store = WizardSessionStore()
        backend = FakeExamBackend(make_exam_payload(status="ACTIVE"))
        session = await ExamEditService.open_session(backend, "exam-1", store)
        session.current_step = LAST_STEP

        result = await ExamEditService.submit(session, backend, confirm_with(False), store)

        assert result.outcome == SubmitOutcome.ABORTED
        assert len(store) == 1
        assert not recorded_events.of(Events.EXAM_UPDATED)

    @pytest.mark.asyncio
    async def test_preset_confirmations(self):
        confirm = preset_confirmations(SubmitConfirmations(active_exam=True))
        assert await confirm(ConfirmationPrompt.ACTIVE_EXAM) is True

        with pytest.raises(BusinessException) as exc_info:
            await confirm(ConfirmationPrompt.EXISTING_ATTEMPTS)
        assert exc_info.value.code == ErrorCode.EXAM_CONFIRMATION_REQUIRED
        assert exc_info.value.data == {"prompt": "existingAttempts"}


class TestWizardSessionStore:
    def test_purge_expired(self):
        store = WizardSessionStore(ttl_minutes=10)
        stale = store.add(WizardSession(load_exam()))
        fresh = store.add(WizardSession(load_exam()))
        fresh.touched_at = stale.touched_at + timedelta(minutes=5)

        expired = store.purge_expired(now=stale.touched_at + timedelta(minutes=11))

        assert expired == [stale.id]
        assert len(store) == 1

    def test_submitting_session_not_purged(self):
        store = WizardSessionStore(ttl_minutes=1)
        session = store.add(WizardSession(load_exam()))
        session.submitting = True
        assert store.purge_expired(now=session.touched_at + timedelta(hours=1)) == []

    def test_remove_and_clear(self):
        store = WizardSessionStore()
        session = store.add(WizardSession(load_exam()))
        assert store.remove(session.id) is session
        assert store.remove(session.id) is None
        store.add(WizardSession(load_exam()))
        store.clear()
        assert len(store) == 0
