"""Job lifecycle transition invariant tests."""

from __future__ import annotations

import unittest

from app.domain.job_fsm import allowed_next_statuses, ensure_transition, is_terminal
from app.errors import ApiError
from app.repositories.memory import InMemoryStore
from app.schemas.job import JobStatus, LocalSource


class JobFsmUnitTests(unittest.TestCase):
    def test_allowed_transitions_follow_the_lifecycle(self) -> None:
        allowed_pairs = [
            (JobStatus.PENDING, JobStatus.PROCESSING),
            (JobStatus.PROCESSING, JobStatus.COMPLETED),
            (JobStatus.PROCESSING, JobStatus.FAILED),
        ]
        for old_status, new_status in allowed_pairs:
            with self.subTest(old_status=old_status, new_status=new_status):
                ensure_transition(old_status, new_status)

    def test_every_other_non_terminal_transition_is_rejected(self) -> None:
        allowed = {
            (JobStatus.PENDING, JobStatus.PROCESSING),
            (JobStatus.PROCESSING, JobStatus.COMPLETED),
            (JobStatus.PROCESSING, JobStatus.FAILED),
        }
        for old_status in (JobStatus.PENDING, JobStatus.PROCESSING):
            for new_status in JobStatus:
                if (old_status, new_status) in allowed:
                    continue
                with self.subTest(old_status=old_status, new_status=new_status):
                    with self.assertRaises(ApiError) as context:
                        ensure_transition(old_status, new_status)
                    self.assertEqual(context.exception.status_code, 409)
                    self.assertEqual(context.exception.payload.code, "FSM_TRANSITION_INVALID")
                    details = context.exception.payload.details
                    self.assertEqual(details["current_status"], old_status)
                    self.assertEqual(details["attempted_status"], new_status)
                    self.assertEqual(details["allowed_next_statuses"], allowed_next_statuses(old_status))

    def test_terminal_states_are_immutable(self) -> None:
        for terminal_status in (JobStatus.COMPLETED, JobStatus.FAILED):
            self.assertTrue(is_terminal(terminal_status))
            for new_status in JobStatus:
                with self.subTest(terminal_status=terminal_status, new_status=new_status):
                    with self.assertRaises(ApiError) as context:
                        ensure_transition(terminal_status, new_status)
                    self.assertEqual(context.exception.payload.code, "FSM_TERMINAL_IMMUTABLE")
                    self.assertEqual(context.exception.payload.details["allowed_next_statuses"], [])

    def test_allowed_next_statuses_are_deterministically_ordered(self) -> None:
        self.assertEqual(allowed_next_statuses(JobStatus.PROCESSING), [JobStatus.COMPLETED, JobStatus.FAILED])
        self.assertEqual(allowed_next_statuses(JobStatus.PENDING), [JobStatus.PROCESSING])
        self.assertFalse(is_terminal(JobStatus.PENDING))


class StoreTransitionTests(unittest.TestCase):
    def _create_job(self, store: InMemoryStore):
        return store.create_job(
            owner_id="user-a",
            source=LocalSource(path="/tmp/clip.mp4"),
            file_name="clip.mp4",
        )

    def test_new_jobs_start_pending_with_media_path_from_local_source(self) -> None:
        store = InMemoryStore()
        job = self._create_job(store)

        self.assertEqual(job.status, JobStatus.PENDING)
        self.assertEqual(job.media_path, "/tmp/clip.mp4")
        self.assertIsNone(job.processing_started)

    def test_transition_applies_status_and_changes_in_one_write(self) -> None:
        store = InMemoryStore()
        job = self._create_job(store)
        before_writes = store.job_write_count

        store.transition_job_status(job=job, new_status=JobStatus.PROCESSING, processing_started=job.created_at)

        self.assertEqual(job.status, JobStatus.PROCESSING)
        self.assertEqual(job.processing_started, job.created_at)
        self.assertGreaterEqual(job.updated_at, job.created_at)
        self.assertEqual(store.job_write_count, before_writes + 1)

    def test_invalid_transition_leaves_job_untouched(self) -> None:
        store = InMemoryStore()
        job = self._create_job(store)
        before_updated_at = job.updated_at
        before_writes = store.job_write_count

        with self.assertRaises(ApiError) as context:
            store.transition_job_status(job=job, new_status=JobStatus.COMPLETED, key_frames_count=3)

        self.assertEqual(context.exception.payload.code, "FSM_TRANSITION_INVALID")
        self.assertEqual(job.status, JobStatus.PENDING)
        self.assertIsNone(job.key_frames_count)
        self.assertEqual(job.updated_at, before_updated_at)
        self.assertEqual(store.job_write_count, before_writes)

    def test_unknown_fields_are_rejected(self) -> None:
        store = InMemoryStore()
        job = self._create_job(store)

        with self.assertRaises(ValueError):
            store.update_job(job=job, owner_id="someone-else")
        self.assertEqual(job.owner_id, "user-a")


if __name__ == "__main__":
    unittest.main()
