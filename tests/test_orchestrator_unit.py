# User value: This test walks the full operator flow so extraction runs behave the same from setup to completion.
import asyncio
import json
import math
import unittest

from schemas.requests import SourceConfig
from schemas.responses import JobStatusResponse
from services.errors import ConfigError
from services.orchestrator import MAX_NOTICES, ExtractionOrchestrator
from services.record_source import RecordSourceClient
from tests.helpers import FakeExtractionBackend, SimulatedClock

SOURCE = SourceConfig(app_link_name="team/scholarship", report_link_name="Active_Requests")


def _status(processed: int) -> JobStatusResponse:
    return JobStatusResponse.model_validate(
        {"success": True, "status": "running", "progress": {"total_records": 100, "processed_records": processed}}
    )


def build(backend: FakeExtractionBackend, sim: SimulatedClock, **kwargs) -> ExtractionOrchestrator:
    client = RecordSourceClient("http://backend.test", http_client=backend.client())
    return ExtractionOrchestrator(
        client,
        source=SOURCE,
        clock=sim.clock,
        sleep=sim.sleep,
        poll_interval_sec=1.0,
        **kwargs,
    )


class OrchestratorUnitTests(unittest.TestCase):
    def test_end_to_end_select_submit_monitor_complete(self):
        backend = FakeExtractionBackend(record_count=120, step=10, complete_after=12)

        async def run_case():
            sim = SimulatedClock()
            orch = build(backend, sim)
            await orch.load_records()
            self.assertEqual(len(orch.records), 120)

            orch.select_first_n(50)
            self.assertEqual(len(orch.selection), 50)

            job = await orch.start_extraction()
            self.assertEqual(job.job_id, "job-1")
            self.assertEqual(orch.monitor.state, "polling")

            await sim.advance(5)
            snap = orch.snapshot()
            self.assertEqual(backend.status_calls, 5)
            self.assertEqual(snap.progress.processed_records, 50)
            self.assertGreater(snap.speed_per_minute, 0)
            self.assertAlmostEqual(snap.speed_per_minute, 600.0)
            self.assertIsNotNone(snap.eta_minutes)
            self.assertTrue(math.isfinite(snap.eta_minutes))
            self.assertAlmostEqual(snap.eta_minutes, 70 / 600.0)

            await sim.advance(7)
            self.assertEqual(backend.status_calls, 12)
            self.assertEqual(orch.job.status, "completed")
            self.assertEqual(orch.monitor.state, "stopped")

            await sim.advance(10)
            self.assertEqual(backend.status_calls, 12)
            self.assertIsNone(orch.snapshot().eta_minutes)
            await orch.aclose()

        asyncio.run(run_case())

        start_form = backend.calls_to("/start")[0][2]
        self.assertEqual(len(json.loads(start_form["selected_record_ids"])), 50)

    def test_duplicate_job_conflict_adopts_active_job(self):
        backend = FakeExtractionBackend(conflict_job_id="J1", complete_after=3)

        async def run_case():
            sim = SimulatedClock()
            orch = build(backend, sim)
            await orch.load_records()
            orch.toggle("rec-001")
            job = await orch.start_extraction()
            self.assertEqual(job.job_id, "J1")
            self.assertTrue(job.adopted)
            self.assertEqual(orch.monitor.state, "polling")
            self.assertEqual(orch.monitor.job_id, "J1")

            notices = orch.drain_notices()
            self.assertIn("info", [n["level"] for n in notices])

            await sim.advance(1)
            # First snapshot of an adopted job is only a baseline.
            self.assertEqual(orch.snapshot().speed_per_minute, 0.0)
            await sim.advance(1)
            self.assertAlmostEqual(orch.snapshot().speed_per_minute, 600.0)
            await orch.aclose()

        asyncio.run(run_case())
        self.assertTrue(all(r[1].endswith("/status/J1") for r in backend.calls_to("/status/")))

    def test_poll_transport_failure_is_retried(self):
        backend = FakeExtractionBackend(complete_after=4, failing_status_calls=(2,))

        async def run_case():
            sim = SimulatedClock()
            orch = build(backend, sim)
            await orch.load_records()
            orch.select_all()
            await orch.start_extraction()
            await sim.advance(2)
            self.assertEqual(orch.monitor.state, "polling")
            self.assertEqual(orch.job.progress.processed_records, 10)
            await sim.advance(2)
            self.assertEqual(orch.job.status, "completed")
            await orch.aclose()

        asyncio.run(run_case())
        self.assertEqual(backend.status_calls, 4)

    def test_failed_job_notifies_and_stops(self):
        backend = FakeExtractionBackend(complete_after=2, final_status="failed")

        async def run_case():
            sim = SimulatedClock()
            orch = build(backend, sim)
            await orch.load_records()
            orch.select_first_n(3)
            await orch.start_extraction()
            await sim.advance(5)
            self.assertEqual(orch.job.status, "failed")
            self.assertEqual(orch.monitor.state, "stopped")
            self.assertIn({"level": "error", "message": "Extraction failed"}, orch.drain_notices())
            await orch.aclose()

        asyncio.run(run_case())
        self.assertEqual(backend.status_calls, 2)

    def test_start_requires_selection(self):
        backend = FakeExtractionBackend()

        async def run_case():
            orch = build(backend, SimulatedClock())
            await orch.load_records()
            with self.assertRaises(ConfigError):
                await orch.start_extraction()
            await orch.aclose()

        asyncio.run(run_case())
        self.assertEqual(backend.calls_to("/start"), [])

    def test_selection_uses_search_narrowed_view_and_survives_it(self):
        backend = FakeExtractionBackend(record_count=30)

        async def run_case():
            orch = build(backend, SimulatedClock())
            await orch.load_records()
            orch.toggle("rec-030")
            orch.set_search("student 01")
            self.assertEqual(len(orch.visible_records()), 10)
            self.assertTrue(orch.selection.has("rec-030"))

            orch.select_first_n(3)
            self.assertEqual(orch.selection.ids(), ["rec-010", "rec-011", "rec-012"])

            orch.clear_selection()
            orch.select_all()
            self.assertEqual(len(orch.selection), 10)
            orch.select_all()
            self.assertEqual(len(orch.selection), 0)
            await orch.aclose()

        asyncio.run(run_case())

    def test_filters_compile_into_candidate_request(self):
        backend = FakeExtractionBackend(record_count=2)

        async def run_case():
            orch = build(backend, SimulatedClock())
            await orch.fetch_fields()
            clause = orch.add_filter()
            self.assertEqual(clause.field, "Student_Name")
            self.assertEqual(clause.operator, "equals")
            orch.update_filter(clause.id, operator="contains", value="Ann")
            extra = orch.add_filter()
            orch.update_filter(extra.id, field="Status", operator="is_not_null")
            dropped = orch.add_filter()
            orch.update_filter(dropped.id, operator="unknown")
            await orch.load_records()

            orch.remove_filter(extra.id)
            self.assertEqual(len(orch.filters), 2)
            with self.assertRaises(KeyError):
                orch.update_filter("missing", value="x")
            await orch.aclose()

        asyncio.run(run_case())
        form = backend.calls_to("/preview")[0][2]
        self.assertEqual(form["filter_criteria"], 'Student_Name.contains("Ann") && Status != null')

    def test_load_records_clears_selection_and_page(self):
        backend = FakeExtractionBackend(record_count=120)

        async def run_case():
            orch = build(backend, SimulatedClock(), records_per_page=50)
            await orch.load_records()
            self.assertEqual(orch.total_pages(), 3)
            self.assertEqual(len(orch.page_records(3)), 20)
            self.assertEqual(orch.current_page, 3)
            self.assertEqual(orch.page_records(99)[0].record_id, "rec-101")
            orch.select_first_n(5)
            await orch.load_records()
            self.assertEqual(len(orch.selection), 0)
            self.assertEqual(orch.current_page, 1)
            await orch.aclose()

        asyncio.run(run_case())

    def test_reset_clears_job_and_reloads(self):
        backend = FakeExtractionBackend(complete_after=1)

        async def run_case():
            sim = SimulatedClock()
            orch = build(backend, sim)
            await orch.load_records()
            orch.select_first_n(2)
            await orch.start_extraction()
            await sim.advance(1)
            self.assertEqual(orch.job.status, "completed")
            await orch.reset()
            self.assertIsNone(orch.job)
            self.assertEqual(orch.monitor.state, "idle")
            self.assertEqual(orch.snapshot().job_id, None)
            await orch.aclose()

        asyncio.run(run_case())
        self.assertEqual(len(backend.calls_to("/preview")), 2)

    def test_regressed_progress_is_discarded(self):
        backend = FakeExtractionBackend()

        async def run_case():
            orch = build(backend, SimulatedClock())
            orch.adopt_job("J9")
            first = _status(40)
            orch._apply_status("J9", first)
            orch._apply_status("J9", _status(30))
            self.assertEqual(orch.job.progress.processed_records, 40)
            orch._apply_status("other", _status(90))
            self.assertEqual(orch.job.progress.processed_records, 40)
            await orch.aclose()

        asyncio.run(run_case())

    def test_terminal_status_with_regressed_progress_still_ends_job(self):
        backend = FakeExtractionBackend(conflict_job_id="J1", complete_after=2, scripted_progress=(40, 30))

        async def run_case():
            sim = SimulatedClock()
            orch = build(backend, sim)
            await orch.load_records()
            orch.toggle("rec-001")
            await orch.start_extraction()
            orch.drain_notices()

            await sim.advance(2)
            self.assertEqual((orch.monitor.state, orch.job.status), ("stopped", "completed"))
            self.assertEqual(orch.job.progress.processed_records, 40)
            self.assertAlmostEqual(orch.job.cost.total_cost_usd, 0.06)
            self.assertIsNone(orch.snapshot().eta_minutes)
            self.assertIn(
                {"level": "success", "message": "Extraction completed successfully"},
                orch.drain_notices(),
            )
            await orch.aclose()

        asyncio.run(run_case())
        self.assertEqual(backend.status_calls, 2)

    def test_undrained_notices_are_capped(self):
        backend = FakeExtractionBackend()

        async def run_case():
            orch = build(backend, SimulatedClock())
            for i in range(MAX_NOTICES + 25):
                orch._notify("info", f"notice {i}")
            self.assertEqual(len(orch.notices), MAX_NOTICES)
            drained = orch.drain_notices()
            self.assertEqual(drained[0]["message"], "notice 25")
            self.assertEqual(drained[-1]["message"], f"notice {MAX_NOTICES + 24}")
            self.assertEqual(orch.drain_notices(), [])
            await orch.aclose()

        asyncio.run(run_case())


if __name__ == "__main__":
    unittest.main()
