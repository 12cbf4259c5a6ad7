"""Template items seeded for a subject/chapter pair.

教科ごとの分岐は持たず、教科名 → テンプレート列の対応表だけで生成内容を
決める。同じ入力には常に同じ下書きを返す（決定的）。
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping

from .models import ItemDraft, ItemType


@dataclass(frozen=True)
class SeedTemplate:
    concept: str
    content: str  # "{chapter}" is substituted
    item_type: ItemType
    difficulty: int

    def render(self, subject: str, chapter: str) -> ItemDraft:
        return ItemDraft(
            subject=subject,
            chapter=chapter,
            concept=self.concept,
            content=self.content.format(chapter=chapter),
            item_type=self.item_type,
            difficulty=self.difficulty,
        )


SUBJECT_TEMPLATES: dict[str, tuple[SeedTemplate, ...]] = {
    "physics": (
        SeedTemplate("Key Formulas", "Important formulas for {chapter}", ItemType.formula, 3),
        SeedTemplate("Core Concepts", "Fundamental concepts in {chapter}", ItemType.concept, 4),
    ),
    "chemistry": (
        SeedTemplate("Chemical Reactions", "Key reactions in {chapter}", ItemType.formula, 4),
        SeedTemplate("Important Facts", "Critical facts for {chapter}", ItemType.fact, 3),
    ),
    "biology": (
        SeedTemplate("Biological Processes", "Key processes in {chapter}", ItemType.concept, 3),
        SeedTemplate("Diagrams", "Important diagrams for {chapter}", ItemType.diagram, 4),
    ),
}


class SeedingHelper:
    """Produce item drafts for a subject/chapter from a lookup table."""

    def __init__(self, templates: Mapping[str, tuple[SeedTemplate, ...]] | None = None) -> None:
        source = SUBJECT_TEMPLATES if templates is None else templates
        self._templates = {key.strip().lower(): tuple(value) for key, value in source.items()}

    @property
    def subjects(self) -> list[str]:
        return sorted(self._templates)

    def templates_for(self, subject: str, chapter: str) -> list[ItemDraft]:
        """未登録の教科は空リスト（何も作成しない）。"""

        templates = self._templates.get(subject.strip().lower(), ())
        return [template.render(subject, chapter) for template in templates]


__all__ = ["SUBJECT_TEMPLATES", "SeedTemplate", "SeedingHelper"]
