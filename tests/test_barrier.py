"""Session barrier between per-file and collective stages."""

from __future__ import annotations

import asyncio

import pytest

from fakes import run

from app.domain.exceptions import PipelineCancelledError
from app.domain.models import AudioFile, FileProcessingState as State
from app.pipelines.audio import SessionBarrier, SessionBarrierError, barrier_status


def _file(name: str, state: State) -> AudioFile:
    return AudioFile(file_name=name, file_path=name, state=state)


def test_status_counts_files_by_position():
    status = barrier_status(
        [
            _file("A.mp3", State.WAITING_FOR_SIBLINGS),
            _file("B.mp3", State.COMPLETE),
            _file("C.mp3", State.UPLOADING),
            _file("D.mp3", State.FAILED),
        ]
    )

    assert (status.total, status.at_barrier, status.pending, status.failed) == (4, 2, 1, 1)
    assert not status.released
    assert not status.aborted
    assert status.waiting_message() == "2 waiting for 4"


def test_barrier_releases_when_every_file_arrived():
    files = [_file("A.mp3", State.WAITING_FOR_SIBLINGS), _file("B.mp3", State.WAITING_FOR_SIBLINGS)]

    status = run(SessionBarrier(poll_interval=0.01).wait(files))

    assert status.released
    assert status.at_barrier == 2


def test_barrier_aborts_once_remaining_files_failed():
    files = [_file("A", State.FAILED), _file("B", State.WAITING_FOR_SIBLINGS)]

    with pytest.raises(SessionBarrierError) as excinfo:
        run(SessionBarrier(poll_interval=0.01).wait(files))

    assert str(excinfo.value) == "Cannot proceed: 1 file failed: A"


def test_abort_message_lists_every_failed_file():
    files = [_file("A", State.FAILED), _file("B", State.FAILED), _file("C", State.WAITING_FOR_SIBLINGS)]

    with pytest.raises(SessionBarrierError, match="Cannot proceed: 2 files failed: A, B"):
        run(SessionBarrier(poll_interval=0.01).wait(files))


def test_barrier_polls_until_a_pending_file_arrives():
    files = [_file("A.mp3", State.WAITING_FOR_SIBLINGS), _file("B.mp3", State.AWAITING_TRANSCRIPT)]
    messages: list[str] = []

    async def scenario():
        async def arrive_later():
            await asyncio.sleep(0.03)
            files[1].state = State.WAITING_FOR_SIBLINGS

        task = asyncio.create_task(arrive_later())
        status = await SessionBarrier(poll_interval=0.01).wait(files, on_progress=messages.append)
        await task
        return status

    status = run(scenario())

    assert status.released
    assert messages
    assert messages[0] == "1 waiting for 2"


def test_barrier_times_out_when_configured():
    files = [_file("A.mp3", State.UPLOADING)]

    with pytest.raises(SessionBarrierError, match="Timed out"):
        run(SessionBarrier(poll_interval=0.01, timeout=0.05).wait(files))


def test_barrier_honours_cancellation():
    files = [_file("A.mp3", State.UPLOADING)]

    async def scenario():
        cancel_event = asyncio.Event()
        cancel_event.set()
        await SessionBarrier(poll_interval=0.01).wait(files, cancel_event=cancel_event)

    with pytest.raises(PipelineCancelledError):
        run(scenario())
