# User value: This file fakes the extraction backend and the clock so job tracking can be tested without waiting.
import asyncio
import json
from urllib.parse import parse_qs

import httpx


async def settle(rounds: int = 50) -> None:
    for _ in range(rounds):
        await asyncio.sleep(0)


class SimulatedClock:
    """Injected clock/sleep pair; time only moves when a test calls ``advance``."""

    def __init__(self, start_ms: float = 0.0):
        self.now_ms = start_ms
        self._waiters = []

    def clock(self) -> float:
        return self.now_ms

    async def sleep(self, seconds: float) -> None:
        fut = asyncio.get_running_loop().create_future()
        self._waiters.append((self.now_ms + seconds * 1000.0, fut))
        await fut

    async def advance(self, seconds: float) -> None:
        target = self.now_ms + seconds * 1000.0
        while True:
            await settle()
            due = sorted((w for w in self._waiters if w[0] <= target), key=lambda w: w[0])
            if not due:
                break
            waiter = due[0]
            self._waiters.remove(waiter)
            self.now_ms = waiter[0]
            if not waiter[1].done():
                waiter[1].set_result(None)
        self.now_ms = target
        await settle()


def make_records(count: int) -> list[dict]:
    return [
        {
            "record_id": f"rec-{i:03d}",
            "student_name": f"Student {i:03d}",
            "has_bank_image": i % 2 == 0,
            "has_bill_image": True,
        }
        for i in range(1, count + 1)
    ]


class FakeExtractionBackend:
    """In-memory stand-in for the extraction backend, served through httpx.MockTransport."""

    def __init__(
        self,
        *,
        record_count: int = 120,
        step: int = 10,
        complete_after: int = 12,
        final_status: str = "completed",
        conflict_job_id: str | None = None,
        failing_status_calls: tuple = (),
        scripted_progress: tuple = (),
    ):
        self.record_count = record_count
        self.step = step
        self.complete_after = complete_after
        self.final_status = final_status
        self.conflict_job_id = conflict_job_id
        self.failing_status_calls = set(failing_status_calls)
        # processed_records per status call; falls back to step * calls once exhausted.
        self.scripted_progress = list(scripted_progress)
        self.status_calls = 0
        self.requests: list[tuple[str, str, dict, httpx.Headers]] = []

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))

    def calls_to(self, suffix: str) -> list[tuple[str, str, dict, httpx.Headers]]:
        return [r for r in self.requests if r[1].endswith(suffix) or suffix in r[1]]

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        form = {k: v[0] for k, v in parse_qs(request.content.decode("utf-8")).items()}
        self.requests.append((request.method, path, form, request.headers))

        if path.endswith("/fetch-fields"):
            return httpx.Response(
                200,
                json={
                    "success": True,
                    "file_fields": ["Bank_Statement", "Fee_Bill"],
                    "text_fields": ["Student_Name", "Status"],
                    "all_fields": ["Bank_Statement", "Fee_Bill", "Student_Name", "Status"],
                    "total_fields": 4,
                },
            )

        if path.endswith("/preview"):
            return httpx.Response(
                200,
                json={
                    "success": True,
                    "sample_records": make_records(self.record_count),
                    "already_extracted_count": 7,
                    "total_records": self.record_count,
                    "images_stored": 0,
                },
            )

        if path.endswith("/start"):
            if self.conflict_job_id:
                return httpx.Response(
                    409,
                    json={"message": "A matching job is already running", "active_job_id": self.conflict_job_id},
                )
            selected = json.loads(form.get("selected_record_ids", "[]"))
            return httpx.Response(
                200,
                json={"success": True, "job_id": "job-1", "message": f"Started {len(selected)} records"},
            )

        if "/status/" in path:
            self.status_calls += 1
            if self.status_calls in self.failing_status_calls:
                raise httpx.ConnectError("connection reset", request=request)
            if self.status_calls <= len(self.scripted_progress):
                processed = self.scripted_progress[self.status_calls - 1]
            else:
                processed = min(self.step * self.status_calls, self.record_count)
            done = self.status_calls >= self.complete_after
            return httpx.Response(
                200,
                json={
                    "success": True,
                    "status": self.final_status if done else "running",
                    "progress": {
                        "total_records": self.record_count,
                        "processed_records": processed,
                        "successful_records": processed,
                        "failed_records": 0,
                        "progress_percent": 100.0 * processed / self.record_count,
                    },
                    "cost": {"total_cost_usd": 0.002 * processed},
                },
            )

        return httpx.Response(404, json={"detail": "Not found"})
