from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Protocol, Sequence

MAX_NAME_LENGTH = 100
MAX_ROLE_LENGTH = 50


class MappingLike(Protocol):
    speaker_id: str
    name: str
    role: str


@dataclass(frozen=True)
class ValidationIssue:
    speaker_id: str
    field: str  # "name" or "role"
    message: str


@dataclass
class ValidationResult:
    is_valid: bool
    errors_by_speaker: Dict[str, List[ValidationIssue]] = field(default_factory=dict)

    def messages(self) -> Dict[str, List[str]]:
        return {speaker: [issue.message for issue in issues] for speaker, issues in self.errors_by_speaker.items()}


def validate_one(mapping: MappingLike, all_mappings: Sequence[MappingLike]) -> List[ValidationIssue]:
    """Validate one mapping against its siblings. Pure; safe per keystroke."""

    issues: List[ValidationIssue] = []
    name = (mapping.name or "").strip()
    role = (mapping.role or "").strip()

    if not name:
        issues.append(ValidationIssue(mapping.speaker_id, "name", "Speaker name is required"))
    elif len(name) > MAX_NAME_LENGTH:
        issues.append(
            ValidationIssue(mapping.speaker_id, "name", f"Name cannot exceed {MAX_NAME_LENGTH} characters")
        )

    if name:
        folded = name.casefold()
        duplicate = any(
            other.speaker_id != mapping.speaker_id and (other.name or "").strip().casefold() == folded
            for other in all_mappings
        )
        if duplicate:
            issues.append(
                ValidationIssue(mapping.speaker_id, "name", f'Name "{mapping.name}" is already used by another speaker')
            )

    if len(role) > MAX_ROLE_LENGTH:
        issues.append(
            ValidationIssue(mapping.speaker_id, "role", f"Role cannot exceed {MAX_ROLE_LENGTH} characters")
        )

    return issues


def validate_all(all_mappings: Sequence[MappingLike]) -> ValidationResult:
    errors_by_speaker: Dict[str, List[ValidationIssue]] = {}
    for mapping in all_mappings:
        issues = validate_one(mapping, all_mappings)
        if issues:
            errors_by_speaker[mapping.speaker_id] = issues
    return ValidationResult(is_valid=not errors_by_speaker, errors_by_speaker=errors_by_speaker)
