from __future__ import annotations

import logging
import re
from typing import Callable, Iterable, List, Optional, Tuple

from src.speaker_session.events import EventChannel, Subscription
from src.speaker_session.models import SpeakerMapping, SpeakerSource

logger = logging.getLogger(__name__)

_NUMBERED_SPEAKER = re.compile(r"^Speaker (\d+)$")


class SpeakerMappingStore:
    """Speaker mappings of the transcription currently being edited.

    ``detected_speaker_ids`` is the ground truth for which speakers need a
    name. Manually added speakers outside that set are kept but never count
    towards :meth:`mapped_count` or :meth:`unmapped_speakers`. Rules such as
    "keep at least one speaker" belong to the caller.
    """

    def __init__(self) -> None:
        self.transcription_id: Optional[str] = None
        self.detected_speaker_ids: List[str] = []
        self._mappings: List[SpeakerMapping] = []
        # Snapshot taken by initialize(); has_changes() compares against it.
        self._original: List[SpeakerMapping] = []
        self._original_speaker_ids: List[str] = []
        self._next_number = 1
        self.changed: EventChannel["SpeakerMappingStore"] = EventChannel("speaker-mappings")

    def initialize(
        self,
        transcription_id: str,
        detected_speaker_ids: Iterable[str],
        existing_mappings: Iterable[SpeakerMapping] = (),
    ) -> None:
        detected = list(dict.fromkeys(detected_speaker_ids))
        continuing = transcription_id == self.transcription_id and bool(self.detected_speaker_ids)
        if not continuing:
            self.transcription_id = transcription_id
            self.detected_speaker_ids = detected

        mappings: List[SpeakerMapping] = []
        seen = set()
        for mapping in existing_mappings:
            if mapping.speaker_id in seen:
                logger.warning("Ignoring duplicate mapping for speaker %s", mapping.speaker_id)
                continue
            seen.add(mapping.speaker_id)
            mappings.append(mapping.model_copy(update={"transcription_id": transcription_id}))
        self._mappings = mappings
        self._original = list(mappings)
        self._original_speaker_ids = self.speaker_ids()
        self._next_number = self._highest_speaker_number() + 1
        self._publish()

    def add(self, speaker_id: str, name: str, role: Optional[str] = None) -> Optional[SpeakerMapping]:
        if self._index(speaker_id) is not None:
            logger.warning("Speaker %s already exists", speaker_id)
            return None

        source = (
            SpeakerSource.AUTO_DETECTED if speaker_id in self.detected_speaker_ids else SpeakerSource.MANUALLY_ADDED
        )
        mapping = SpeakerMapping(
            speaker_id=speaker_id,
            name=name,
            role=role or "",
            transcription_id=self.transcription_id or "",
            source=source,
        )
        self._mappings.append(mapping)
        self._publish()
        return mapping

    def add_speaker(self, name: str = "", role: Optional[str] = None) -> SpeakerMapping:
        """Add a manual speaker under the next free "Speaker N" id."""

        speaker_id = self.next_speaker_id()
        self._next_number = int(speaker_id.split()[-1]) + 1
        return self.add(speaker_id, name, role)  # type: ignore[return-value]

    def update(self, speaker_id: str, *, name: Optional[str] = None, role: Optional[str] = None) -> Optional[SpeakerMapping]:
        index = self._index(speaker_id)
        if index is None:
            return None
        changes = {key: value for key, value in (("name", name), ("role", role)) if value is not None}
        mapping = self._mappings[index].model_copy(update=changes)
        self._mappings[index] = mapping
        self._publish()
        return mapping

    def delete(self, speaker_id: str) -> bool:
        index = self._index(speaker_id)
        if index is None:
            return False
        del self._mappings[index]
        self._publish()
        return True

    def remove_speaker(self, speaker_id: str) -> bool:
        """Take a speaker off the list entirely, detected or not."""

        if speaker_id not in self.speaker_ids():
            return False
        self.detected_speaker_ids = [s for s in self.detected_speaker_ids if s != speaker_id]
        index = self._index(speaker_id)
        if index is not None:
            del self._mappings[index]
        self._publish()
        return True

    def clear(self) -> None:
        self.transcription_id = None
        self.detected_speaker_ids = []
        self._mappings = []
        self._original = []
        self._original_speaker_ids = []
        self._next_number = 1
        self._publish()

    # Selectors

    def get(self, speaker_id: str) -> Optional[SpeakerMapping]:
        index = self._index(speaker_id)
        return None if index is None else self._mappings[index]

    def all_mappings(self) -> List[SpeakerMapping]:
        return list(self._mappings)

    def mapped_count(self) -> int:
        named = {m.speaker_id for m in self._mappings if m.is_named}
        return sum(1 for speaker_id in self.detected_speaker_ids if speaker_id in named)

    def unmapped_speakers(self) -> List[str]:
        named = {m.speaker_id for m in self._mappings if m.is_named}
        return [speaker_id for speaker_id in self.detected_speaker_ids if speaker_id not in named]

    def speaker_ids(self) -> List[str]:
        """Detected speakers followed by manually added ones."""

        manual = [m.speaker_id for m in self._mappings if m.speaker_id not in self.detected_speaker_ids]
        return self.detected_speaker_ids + manual

    def next_speaker_id(self) -> str:
        return f"Speaker {max(self._next_number, self._highest_speaker_number() + 1)}"

    def has_changes(self) -> bool:
        """True when the mappings differ from what initialize() loaded.

        Removed speakers and edited names or roles count; a new speaker
        counts once it has a name.
        """

        current_ids = set(self.speaker_ids())
        if any(speaker_id not in current_ids for speaker_id in self._original_speaker_ids):
            return True
        original = {m.speaker_id: _values(m) for m in self._original}
        for mapping in self._mappings:
            if mapping.speaker_id in original:
                if original[mapping.speaker_id] != _values(mapping):
                    return True
            elif mapping.is_named:
                return True
        return any(speaker_id not in {m.speaker_id for m in self._mappings} for speaker_id in original)

    def subscribe(self, listener: Callable[["SpeakerMappingStore"], None]) -> Subscription:
        return self.changed.subscribe(listener)

    def __len__(self) -> int:
        return len(self._mappings)

    def _index(self, speaker_id: str) -> Optional[int]:
        for index, mapping in enumerate(self._mappings):
            if mapping.speaker_id == speaker_id:
                return index
        return None

    def _highest_speaker_number(self) -> int:
        numbers = [0]
        for speaker_id in self.speaker_ids():
            match = _NUMBERED_SPEAKER.match(speaker_id)
            if match:
                numbers.append(int(match.group(1)))
        return max(numbers)

    def _publish(self) -> None:
        self.changed.publish(self)


def _values(mapping: SpeakerMapping) -> Tuple[str, str]:
    return mapping.name, mapping.role
