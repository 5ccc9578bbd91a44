"""Duplicate detection and merge for catalog entities."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable

from flask import current_app

from questgate.extensions import db
from questgate.services.errors import InvalidStateError, ValidationError
from questgate.services.store import close_pending_edit_requests, commit, retarget, store_for

HIGH_CONFIDENCE = 0.8


def levenshtein(a: str, b: str) -> int:
    """Edit distance between two strings (insert/delete/substitute, cost 1)."""
    if len(a) < len(b):
        a, b = b, a
    previous = list(range(len(b) + 1))
    for i, char_a in enumerate(a, start=1):
        current = [i]
        for j, char_b in enumerate(b, start=1):
            if char_a == char_b:
                current.append(previous[j - 1])
            else:
                current.append(1 + min(previous[j], current[j - 1], previous[j - 1]))
        previous = current
    return previous[-1]


def score(a: str, b: str) -> float:
    """Case-insensitive similarity in [0, 1] ignoring surrounding blanks; two empty strings score 1."""
    a, b = a.strip().lower(), b.strip().lower()
    longest = max(len(a), len(b))
    if longest == 0:
        return 1.0
    return 1 - levenshtein(a, b) / longest


@dataclass(frozen=True)
class Match:
    name: str
    score: float
    id: str | None = None
    high_confidence: float = HIGH_CONFIDENCE

    @property
    def confidence(self) -> str:
        """``high`` renders as a red chip, ``low`` as amber."""
        return "high" if self.score > self.high_confidence else "low"

    def to_dict(self) -> dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'score': round(self.score, 3),
            'confidence': self.confidence,
        }


def suggest(
    candidate: str,
    existing: Iterable[str | tuple[str, str]],
    threshold: float = 0.5,
    top_k: int = 3,
    high_confidence: float = HIGH_CONFIDENCE,
) -> list[Match]:
    """Rank existing names by similarity to ``candidate``.

    ``existing`` holds plain names or ``(id, name)`` pairs. Only scores strictly
    above ``threshold`` are kept; ties keep their input order.
    """
    matches = []
    for item in existing:
        entity_id, name = item if isinstance(item, tuple) else (None, item)
        similarity = score(candidate, name)
        if similarity > threshold:
            matches.append(Match(name=name, score=similarity, id=entity_id, high_confidence=high_confidence))
    matches.sort(key=lambda m: m.score, reverse=True)
    return matches[:top_k]


def merge(source: Any, target_id: str) -> Any:
    """Retire ``source`` in favour of the canonical ``target_id`` row.

    References are re-pointed before the source row is deleted and both happen
    in one commit. Irreversible: callers confirm with the admin first.
    """
    if not target_id:
        raise ValidationError("Merge target is required", fields=['targetId'])
    if target_id == source.id:
        raise ValidationError("Cannot merge an entity into itself", fields=['targetId'])

    target = store_for(source.KIND).require(target_id)
    if not target.is_validated:
        raise InvalidStateError(
            f"Merge target {target.display_name!r} has not been validated yet"
        )

    retarget(source, target)
    close_pending_edit_requests(source.KIND, source.id, f"Merged into {target.display_name}")
    db.session.flush()
    db.session.delete(source)
    commit(f"merge {source.KIND} {source.id} into {target.id}")

    current_app.logger.info(f"Merged {source.KIND} {source.id} into {target.id}")
    return target


__all__ = ["levenshtein", "score", "suggest", "merge", "Match", "HIGH_CONFIDENCE"]
