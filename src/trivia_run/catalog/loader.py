from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Protocol, Sequence

import structlog

from trivia_run.catalog.models import MIN_CATEGORIES, Catalog, Category, Question
from trivia_run.core.errors import CatalogValidationError

log = structlog.get_logger()

MANIFEST_NAME = "manifest.json"


class CatalogProvider(Protocol):
    """
    Source of the normalized question bank.

    Raises CatalogValidationError with itemized details on any problem.
    """

    def load_catalog(self) -> Catalog:
        ...


def stable_question_id(category_id: str, prompt: str, index: int) -> str:
    """
    Deterministic id for questions authored without one.
    """
    h = 0
    for ch in f"{category_id}-{prompt}-{index}":
        h = (h * 31 + ord(ch)) % 2147483647
    return f"{category_id}-{h:x}"


def _normalize_question(
    category_id: str,
    raw: Any,
    index: int,
    errors: list[str],
) -> Question | None:
    if not isinstance(raw, Mapping):
        errors.append(f"Category {category_id} question {index + 1} is missing a prompt")
        return None

    prompt = raw.get("prompt")
    if not isinstance(prompt, str) or not prompt.strip():
        errors.append(f"Category {category_id} question {index + 1} is missing a prompt")
        return None

    choices = raw.get("choices")
    if not isinstance(choices, list) or not 2 <= len(choices) <= 6:
        errors.append(f'Question "{prompt}" must have 2-6 choices')
        return None

    answer_index = raw.get("answerIndex", raw.get("answer_index"))
    # bool is an int subclass; reject it explicitly
    if (
        not isinstance(answer_index, int)
        or isinstance(answer_index, bool)
        or not 0 <= answer_index < len(choices)
    ):
        errors.append(f'Question "{prompt}" has invalid answerIndex')
        return None

    tags = raw.get("tags")
    return Question(
        id=raw.get("id") or stable_question_id(category_id, prompt, index),
        prompt=prompt.strip(),
        choices=tuple(str(c) for c in choices),
        answer_index=answer_index,
        explanation=raw.get("explanation") or "",
        difficulty=raw.get("difficulty") or "normal",
        tags=tuple(tags) if isinstance(tags, list) else (),
    )


def _normalize_category(
    raw: Any,
    ids: set[str],
    errors: list[str],
    source: str,
) -> Category | None:
    if not isinstance(raw, Mapping):
        errors.append(f"Category from {source} is missing an id")
        return None

    raw_id = raw.get("id")
    if not isinstance(raw_id, str) or not raw_id.strip():
        errors.append(f"Category from {source} is missing an id")
        return None

    category_id = raw_id.strip()
    if category_id in ids:
        errors.append(f"Duplicate category id: {category_id}")
        return None
    ids.add(category_id)

    name = raw.get("name")
    if not isinstance(name, str) or not name.strip():
        errors.append(f"Category {category_id} ({source}) is missing a name")
        return None

    questions = raw.get("questions")
    if not isinstance(questions, list) or not questions:
        errors.append(f"Category {category_id} must include at least one question")
        return None

    normalized: list[Question] = []
    for i, q in enumerate(questions):
        nq = _normalize_question(category_id, q, i, errors)
        if nq is not None:
            normalized.append(nq)

    return Category(id=category_id, name=name.strip(), questions=tuple(normalized))


def build_catalog(
    raw_categories: Sequence[tuple[str, Any]],
    *,
    version: int | str = 1,
    errors: list[str] | None = None,
) -> Catalog:
    """
    Normalize (source_label, raw_category) pairs into a Catalog.

    All problems are collected first; a single CatalogValidationError lists them.
    """
    errors = errors if errors is not None else []
    ids: set[str] = set()
    categories: list[Category] = []

    for source, raw in raw_categories:
        c = _normalize_category(raw, ids, errors, source)
        if c is not None:
            categories.append(c)

    if len(categories) < MIN_CATEGORIES:
        errors.append(f"Only {len(categories)} categories loaded; {MIN_CATEGORIES} required.")

    if errors:
        raise CatalogValidationError("Question data failed validation.", errors)

    return Catalog(version=version, categories=tuple(categories))


@dataclass(frozen=True, slots=True)
class InMemoryCatalogProvider:
    """
    Catalog built from an already-parsed mapping {"version", "categories": [...]}.

    Used by tests and embedders that ship questions inside the process.
    """

    data: Mapping[str, Any]

    def load_catalog(self) -> Catalog:
        raw = self.data.get("categories")
        if not isinstance(raw, list):
            raise CatalogValidationError(
                "Question data failed validation.",
                ['"categories" must be an array.'],
            )
        return build_catalog(
            [("memory", c) for c in raw],
            version=self.data.get("version") or 1,
        )


@dataclass(frozen=True, slots=True)
class DirectoryCatalogProvider:
    """
    Reads <root>/manifest.json and one JSON file per category.

    manifest.json:
      {"version": 1, "files": ["history.json", ...]}

    Each category file holds {"category": {...}} or {"categories": [{...}]}.
    """

    root: Path

    def load_catalog(self) -> Catalog:
        manifest = _read_json(self.root / MANIFEST_NAME, "the question manifest")

        errors: list[str] = []
        files = manifest.get("files") if isinstance(manifest, Mapping) else None
        if not isinstance(files, list):
            errors.append(f'"files" must be an array inside {MANIFEST_NAME}.')
        elif len(files) < MIN_CATEGORIES:
            errors.append(f"Manifest must list at least {MIN_CATEGORIES} files.")

        if errors:
            raise CatalogValidationError("Question manifest failed validation.", errors)

        raw_categories: list[tuple[str, Any]] = []
        for name in files:
            label = f"questions/{name}"
            try:
                payload = _read_json(self.root / str(name), label)
            except CatalogValidationError as exc:
                errors.append(exc.message)
                continue

            entry = payload.get("category") if isinstance(payload, Mapping) else None
            if entry is None and isinstance(payload, Mapping):
                listed = payload.get("categories")
                if isinstance(listed, list) and listed:
                    entry = listed[0]
            if entry is None:
                errors.append(f'File {name} does not include a "category" entry.')
                continue
            raw_categories.append((str(name), entry))

        catalog = build_catalog(raw_categories, version=manifest.get("version") or 1, errors=errors)
        log.info("catalog.read", root=str(self.root), files=len(files), categories=len(catalog.categories))
        return catalog


def _read_json(path: Path, label: str) -> Any:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise CatalogValidationError(f"Unable to load {label}.", [str(exc)]) from exc

    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        raise CatalogValidationError(
            f"{label} is not valid JSON.",
            ["Please ensure the file contains valid JSON."],
        ) from exc
