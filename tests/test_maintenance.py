"""Maintenance operations over stored sessions."""

from __future__ import annotations

from datetime import timedelta
from pathlib import Path
from uuid import uuid4

import pytest

from fakes import run, sample_highlights

from app.domain.exceptions import AudioFileNotFoundError, SessionNotFoundError
from app.domain.models import (
    AudioFile,
    FileProcessingState,
    Session,
    SessionProcessingState,
    utcnow,
)
from app.pipelines.audio import InvalidTransitionError


def _store(repository, session: Session) -> Session:
    return run(repository.insert(session))


def _file(folder: Path, name: str, **fields) -> AudioFile:
    path = folder / name
    path.write_bytes(b"\x00" * 64)
    return AudioFile(file_name=name, file_path=str(path), **fields)


def test_stuck_analyzing_with_transcripts_goes_back_to_transcribing(container, repository, tmp_path):
    session = _store(
        repository,
        Session(
            folder_path=str(tmp_path),
            state=SessionProcessingState.ANALYZING,
            audio_files=[_file(tmp_path, "MIC1.mp3", transcript_text="Alice: hi")],
        ),
    )

    assert run(container.maintenance.fix_stuck_analyzing()) == 1

    stored = run(repository.get(session.id))
    assert stored.state == SessionProcessingState.TRANSCRIBING


def test_stuck_analyzing_with_highlights_is_completed(container, repository, tmp_path):
    session = _store(
        repository,
        Session(
            folder_path=str(tmp_path),
            state=SessionProcessingState.ANALYZING,
            highlights=sample_highlights(),
        ),
    )
    untouched = _store(repository, Session(folder_path=str(tmp_path), state=SessionProcessingState.ANALYZING))

    assert run(container.maintenance.fix_stuck_analyzing()) == 1

    assert run(repository.get(session.id)).state == SessionProcessingState.COMPLETE
    assert run(repository.get(untouched.id)).state == SessionProcessingState.ANALYZING


def test_abandoned_sessions_are_recovered_or_failed(container, repository, tmp_path):
    old = utcnow() - timedelta(hours=2)
    with_transcripts = _store(
        repository,
        Session(
            folder_path=str(tmp_path),
            state=SessionProcessingState.TRANSCRIBING,
            created_at=old,
            audio_files=[_file(tmp_path, "MIC1.mp3", transcript_text="Alice: hi")],
        ),
    )
    empty = _store(repository, Session(folder_path=str(tmp_path), created_at=old))
    finished = _store(
        repository,
        Session(folder_path=str(tmp_path), created_at=old, state=SessionProcessingState.COMPLETE),
    )
    recent = _store(repository, Session(folder_path=str(tmp_path)))

    summary = run(container.maintenance.cleanup_abandoned_sessions())

    assert (summary.processed, summary.recovered, summary.failed, summary.errors) == (2, 1, 1, 0)
    recovered = run(repository.get(with_transcripts.id))
    assert recovered.state == SessionProcessingState.TRANSCRIBING
    assert recovered.error_message.startswith("Session was abandoned and recovered")
    failed = run(repository.get(empty.id))
    assert failed.state == SessionProcessingState.FAILED
    assert failed.error_message == "Session abandoned after 2.0 hours without progress"
    assert run(repository.get(finished.id)).state == SessionProcessingState.COMPLETE
    assert run(repository.get(recent.id)).state == SessionProcessingState.PENDING


def test_detect_stuck_sessions_counts_repairs(container, repository, tmp_path):
    _store(repository, Session(folder_path=str(tmp_path), created_at=utcnow() - timedelta(hours=3)))

    assert run(container.maintenance.detect_stuck_sessions(timedelta(minutes=10))) == 1


def test_reset_stuck_processing(container, repository, tmp_path):
    stale = _store(
        repository,
        Session(
            folder_path=str(tmp_path),
            state=SessionProcessingState.TRANSCRIBING,
            updated_at=utcnow() - timedelta(hours=1),
        ),
    )
    fresh = _store(repository, Session(folder_path=str(tmp_path), state=SessionProcessingState.TRANSCRIBING))

    assert run(container.maintenance.reset_stuck_processing()) == 1

    stored = run(repository.get(stale.id))
    assert stored.state == SessionProcessingState.PENDING
    assert stored.error_message == (
        "Session was stuck in transcribing status for over 30 minutes and has been reset"
    )
    assert run(repository.get(fresh.id)).state == SessionProcessingState.TRANSCRIBING


def test_scans_leave_running_sessions_alone(container, repository, tmp_path):
    old = utcnow() - timedelta(hours=2)
    stale = _store(
        repository,
        Session(
            folder_path=str(tmp_path),
            state=SessionProcessingState.TRANSCRIBING,
            created_at=old,
            updated_at=old,
        ),
    )
    analyzing = _store(
        repository,
        Session(
            folder_path=str(tmp_path),
            state=SessionProcessingState.ANALYZING,
            highlights=sample_highlights(),
        ),
    )
    container.runs.begin(stale.id)
    container.runs.begin(analyzing.id)

    assert run(container.maintenance.reset_stuck_processing()) == 0
    assert run(container.maintenance.cleanup_abandoned_sessions()).processed == 0
    assert run(container.maintenance.fix_stuck_analyzing()) == 0
    assert run(repository.get(stale.id)).state == SessionProcessingState.TRANSCRIBING
    assert run(repository.get(analyzing.id)).state == SessionProcessingState.ANALYZING

    container.runs.finish(stale.id)
    assert run(container.maintenance.reset_stuck_processing()) == 1


def test_recover_failed_files(container, repository, tmp_path):
    session = _store(
        repository,
        Session(
            folder_path=str(tmp_path),
            state=SessionProcessingState.FAILED,
            audio_files=[
                _file(tmp_path, "MIC1.mp3", state=FileProcessingState.FAILED, error_message="boom"),
                _file(tmp_path, "MIC2.mp3", state=FileProcessingState.FAILED, can_retry=False),
                _file(tmp_path, "MASTER_MIX.mp3", state=FileProcessingState.WAITING_FOR_SIBLINGS),
            ],
        ),
    )

    assert run(container.maintenance.recover_failed_files(session.id)) == 2

    stored = run(repository.get(session.id))
    assert stored.state == SessionProcessingState.PENDING
    assert stored.error_message == "Reset 2 failed audio files for retry"
    mic1 = stored.find_file("MIC1.mp3")
    assert mic1.state == FileProcessingState.PENDING
    assert mic1.current_step == "Ready for retry"
    assert mic1.error_message is None
    assert stored.find_file("MASTER_MIX.mp3").state == FileProcessingState.WAITING_FOR_SIBLINGS


def test_recover_failed_files_unknown_session(container):
    with pytest.raises(SessionNotFoundError):
        run(container.maintenance.recover_failed_files(uuid4()))


def test_retry_single_file_from_chosen_state(container, repository, tmp_path):
    session = _store(
        repository,
        Session(
            folder_path=str(tmp_path),
            state=SessionProcessingState.FAILED,
            audio_files=[_file(tmp_path, "MIC1.mp3", state=FileProcessingState.FAILED)],
        ),
    )

    audio_file = run(container.maintenance.retry_file(session.id, "MIC1.mp3", FileProcessingState.UPLOADING))

    assert audio_file.state == FileProcessingState.UPLOADING
    assert audio_file.current_step == "Ready for upload"
    assert run(repository.get(session.id)).state == SessionProcessingState.PENDING

    with pytest.raises(AudioFileNotFoundError):
        run(container.maintenance.retry_file(session.id, "MIC9.mp3"))
    with pytest.raises(InvalidTransitionError):
        run(container.maintenance.retry_file(session.id, "MIC1.mp3", FileProcessingState.COMPLETE))


def test_diagnose_scores_each_issue(container, repository, tmp_path):
    session = _store(
        repository,
        Session(
            folder_path=str(tmp_path),
            audio_files=[
                AudioFile(
                    file_name="MIC1.mp3",
                    file_path=str(tmp_path / "missing.mp3"),
                    state=FileProcessingState.FAILED,
                    error_message="Upload failed",
                )
            ],
        ),
    )

    diagnostics = run(container.maintenance.diagnose(session.id))

    assert diagnostics.session_found is True
    assert len(diagnostics.issues) == 2
    assert diagnostics.health_score == 80
    assert any("Audio file missing" in item.issue for item in diagnostics.issues)


def test_diagnose_unknown_session(container):
    diagnostics = run(container.maintenance.diagnose(uuid4()))

    assert diagnostics.session_found is False
    assert diagnostics.health_score == 0


def test_redownload_transcripts(container, repository, tmp_path):
    session = _store(
        repository,
        Session(
            folder_path=str(tmp_path),
            mic_assignments={0: "Alice", 1: "Bob"},
            audio_files=[
                _file(
                    tmp_path,
                    "MIC1.mp3",
                    state=FileProcessingState.FAILED,
                    transcript_id="job-MIC1",
                    speaker_number=0,
                ),
                _file(tmp_path, "MIC2.mp3", state=FileProcessingState.UPLOADING),
            ],
        ),
    )

    assert run(container.maintenance.redownload_transcripts(session.id)) == 1

    stored = run(repository.get(session.id))
    mic1 = stored.find_file("MIC1.mp3")
    assert mic1.state == FileProcessingState.TRANSCRIPT_DOWNLOADED
    assert mic1.transcript_text == "Alice: I loved the ending so much"
    assert Path(mic1.json_file_path).exists()
    assert stored.find_file("MIC2.mp3").state == FileProcessingState.UPLOADING

    # Nothing left to fetch the second time around.
    assert run(container.maintenance.redownload_transcripts(session.id)) == 0


def test_redownload_keeps_speaker_attributed_master_text(container, repository, transcription, session_folder):
    # Diarization labels the speakers the other way round from the mics.
    transcription.segments["MASTER_MIX"] = [
        (0.0, 2.0, "I loved the ending so much", 1),
        (3.0, 5.0, "No way the ending was terrible", 0),
    ]

    async def scenario():
        session = await container.repository.insert(await container.metadata.prepare(str(session_folder)))
        await container.orchestrator.run_enhanced(session)
        return await repository.get(session.id)

    completed = run(scenario())
    master = completed.master_file
    attributed = "Alice: I loved the ending so much\nBob: No way the ending was terrible"
    assert master.transcript_text == attributed

    Path(master.json_file_path).unlink()
    assert run(container.maintenance.redownload_transcripts(completed.id)) == 1

    stored = run(repository.get(completed.id))
    assert Path(stored.master_file.json_file_path).exists()
    assert stored.master_file.transcript_text == attributed
    assert stored.merged_transcript == attributed
