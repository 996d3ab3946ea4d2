from src.speaker_session.mappings.validator import validate_all, validate_one
from src.speaker_session.models import SpeakerMapping


def test_empty_name_is_required():
    mapping = SpeakerMapping(speaker_id="S1", name="   ")
    issues = validate_one(mapping, [mapping])
    assert [issue.message for issue in issues] == ["Speaker name is required"]
    assert issues[0].field == "name"
    assert issues[0].speaker_id == "S1"


def test_duplicate_names_are_case_insensitive_and_flag_both_speakers():
    mappings = [
        SpeakerMapping(speaker_id="S1", name="John Doe"),
        SpeakerMapping(speaker_id="S2", name="john doe "),
        SpeakerMapping(speaker_id="S3", name="Jane"),
    ]
    result = validate_all(mappings)

    assert result.is_valid is False
    assert set(result.errors_by_speaker) == {"S1", "S2"}
    assert "already used by another speaker" in result.errors_by_speaker["S1"][0].message
    assert "already used by another speaker" in result.errors_by_speaker["S2"][0].message


def test_same_speaker_is_not_its_own_duplicate():
    mapping = SpeakerMapping(speaker_id="S1", name="Alice")
    assert validate_one(mapping, [mapping]) == []


def test_length_limits():
    mapping = SpeakerMapping(speaker_id="S1", name="a" * 101, role="r" * 51)
    fields = sorted(issue.field for issue in validate_one(mapping, [mapping]))
    assert fields == ["name", "role"]


def test_valid_mappings():
    result = validate_all(
        [SpeakerMapping(speaker_id="S1", name="Alice", role="PM"), SpeakerMapping(speaker_id="S2", name="Bob")]
    )
    assert result.is_valid is True
    assert result.errors_by_speaker == {}
    assert result.messages() == {}
