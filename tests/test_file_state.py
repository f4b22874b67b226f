"""Per-file state machine, stage executors and driver."""

from __future__ import annotations

from pathlib import Path

import pytest

from fakes import ROSTER, FakeConverter, FakeTranscription, run

from app.domain.models import AudioFile, FileProcessingState as State
from app.pipelines.audio import FileDriver, FileStateMachine, InvalidTransitionError, StageExecutors, reset_to
from app.pipelines.audio.file_state import advance_collective, apply_transition, can_retry_from, is_allowed
from app.pipelines.audio.progress import FileProgress, conversion_percent, polling_percent
from app.services.transcript_store import TranscriptStore


def _driver(converter: FakeConverter, transcription: FakeTranscription) -> FileDriver:
    executors = StageExecutors(converter, transcription, TranscriptStore())
    return FileDriver(FileStateMachine(executors))


def _recording(folder: Path, name: str) -> AudioFile:
    path = folder / name
    path.write_bytes(b"\x00" * 512)
    return AudioFile(file_name=name, file_path=str(path), size_bytes=512)


def test_transition_table_rejects_skipped_stages():
    assert is_allowed(State.PENDING, State.CONVERTING)
    assert is_allowed(State.PENDING, State.UPLOADING)
    assert not is_allowed(State.PENDING, State.UPLOADED)
    assert not is_allowed(State.TRANSCRIPT_DOWNLOADED, State.MERGING_ATTRIBUTION)

    audio_file = AudioFile(file_name="MIC1.mp3", file_path="MIC1.mp3")
    with pytest.raises(InvalidTransitionError):
        apply_transition(audio_file, State.AWAITING_TRANSCRIPT)
    assert audio_file.state == State.PENDING


def test_failed_is_reachable_from_any_non_terminal_state():
    assert is_allowed(State.CONVERTING, State.FAILED)
    assert is_allowed(State.ANALYZING_WITH_AI, State.FAILED)
    assert not is_allowed(State.COMPLETE, State.FAILED)
    assert is_allowed(State.FAILED, State.PENDING)


def test_wav_recording_is_driven_to_the_barrier(tmp_path: Path):
    converter = FakeConverter()
    transcription = FakeTranscription()
    audio_file = _recording(tmp_path, "MIC1.wav")

    run(_driver(converter, transcription).drive(audio_file, mic_assignments=ROSTER))

    assert audio_file.state == State.WAITING_FOR_SIBLINGS
    assert audio_file.file_name == "MIC1.mp3"
    assert not (tmp_path / "MIC1.wav").exists()
    assert (tmp_path / "MIC1.mp3").exists()
    assert audio_file.converted_at is not None
    assert audio_file.audio_url == "https://files.example/MIC1.mp3"
    assert audio_file.transcript_id == "job-MIC1"
    assert audio_file.transcript_text == "Alice: I loved the ending so much"
    assert Path(audio_file.json_file_path) == tmp_path / "MIC1_transcription.json"
    assert (tmp_path / "MIC1_transcription.txt").read_text(encoding="utf-8") == audio_file.transcript_text
    assert audio_file.progress == 100
    assert converter.calls == ["MIC1.wav"]
    assert transcription.jobs == [("MIC1", 1, False)]


def test_mp3_recording_skips_conversion(tmp_path: Path):
    converter = FakeConverter()
    transcription = FakeTranscription()
    audio_file = _recording(tmp_path, "MIC2.mp3")

    run(_driver(converter, transcription).drive(audio_file, mic_assignments=ROSTER))

    assert audio_file.state == State.WAITING_FOR_SIBLINGS
    assert converter.calls == []
    assert transcription.uploads == ["MIC2.mp3"]
    assert audio_file.transcript_text == "Bob: No way the ending was terrible"


def test_unsupported_extension_fails_without_retry(tmp_path: Path):
    transcription = FakeTranscription()
    audio_file = _recording(tmp_path, "notes.m4a")

    run(_driver(FakeConverter(), transcription).drive(audio_file))

    assert audio_file.state == State.FAILED
    assert audio_file.can_retry is False
    assert audio_file.error_message == "Unsupported file type: .m4a"
    assert audio_file.current_step == "Failed: Unsupported file type: .m4a"
    assert transcription.uploads == []


def test_provider_error_marks_file_failed_and_retryable(tmp_path: Path):
    transcription = FakeTranscription()
    transcription.fail_stems.add("MIC1")
    audio_file = _recording(tmp_path, "MIC1.mp3")

    run(_driver(FakeConverter(), transcription).drive(audio_file, mic_assignments=ROSTER))

    assert audio_file.state == State.FAILED
    assert audio_file.can_retry is True
    assert "provider error" in audio_file.error_message
    assert audio_file.transcript_id == "job-MIC1"


def test_replaying_stages_does_not_repeat_side_effects(tmp_path: Path):
    converter = FakeConverter()
    transcription = FakeTranscription()
    driver = _driver(converter, transcription)
    audio_file = _recording(tmp_path, "MIC1.wav")

    run(driver.drive(audio_file, mic_assignments=ROSTER))
    reset_to(audio_file, State.CONVERTING)
    run(driver.drive(audio_file, mic_assignments=ROSTER))

    assert audio_file.state == State.WAITING_FOR_SIBLINGS
    assert converter.calls == ["MIC1.wav"]
    assert transcription.uploads == ["MIC1.mp3"]
    assert len(transcription.jobs) == 1
    assert transcription.polls == ["job-MIC1"]


def test_advance_collective_is_idempotent_and_skips_failed_files():
    files = [
        AudioFile(file_name="MIC1.mp3", file_path="MIC1.mp3", state=State.WAITING_FOR_SIBLINGS),
        AudioFile(file_name="MIC2.mp3", file_path="MIC2.mp3", state=State.WAITING_FOR_SIBLINGS),
        AudioFile(file_name="PHONE.mp3", file_path="PHONE.mp3", state=State.FAILED),
    ]

    assert advance_collective(files, State.READY_FOR_ANALYSIS) == 4
    assert advance_collective(files, State.READY_FOR_ANALYSIS) == 0
    assert [item.state for item in files] == [
        State.READY_FOR_ANALYSIS,
        State.READY_FOR_ANALYSIS,
        State.FAILED,
    ]


def test_reset_only_targets_retryable_states():
    audio_file = AudioFile(file_name="MIC1.mp3", file_path="MIC1.mp3", state=State.FAILED, can_retry=False)

    reset_to(audio_file, State.UPLOADING)

    assert audio_file.state == State.UPLOADING
    assert audio_file.current_step == "Ready for upload"
    assert audio_file.can_retry is True
    assert can_retry_from(State.AWAITING_TRANSCRIPT)
    assert not can_retry_from(State.COMPLETE)
    with pytest.raises(InvalidTransitionError):
        reset_to(audio_file, State.COMPLETE)


def test_reset_to_awaiting_transcript_without_a_job_restarts_from_upload():
    audio_file = AudioFile(
        file_name="MIC1.mp3",
        file_path="MIC1.mp3",
        state=State.FAILED,
        audio_url="https://files.example/MIC1.mp3",
    )

    reset_to(audio_file, State.AWAITING_TRANSCRIPT)
    assert audio_file.state == State.UPLOADING

    audio_file.transcript_id = "job-MIC1"
    reset_to(audio_file, State.AWAITING_TRANSCRIPT)
    assert audio_file.state == State.AWAITING_TRANSCRIPT


def test_file_progress_is_monotonic_within_a_stage():
    audio_file = AudioFile(file_name="MIC1.mp3", file_path="MIC1.mp3")
    seen = []
    progress = FileProgress(audio_file, observer=lambda item: seen.append(item.progress))

    progress.start_stage("Uploading audio")
    progress.advance(50)
    progress.advance(30)
    assert audio_file.progress == 50

    progress.finish("Uploaded")
    progress.start_stage("Waiting for transcript")
    assert audio_file.progress == 0
    assert seen == [0, 50, 50, 100, 0]


def test_stage_percent_helpers():
    assert conversion_percent(0, 10) == 10
    assert conversion_percent(10, 10) == 100
    assert conversion_percent(5, 0) == 10
    assert polling_percent(1) == 15
    assert polling_percent(100) == 90
