from __future__ import annotations

import hashlib
import json
import logging
import random
import re
from pathlib import Path
from typing import Callable, Iterable, Mapping, TypeVar

from jinja2 import ChainableUndefined, TemplateSyntaxError
from jinja2.exceptions import TemplateError as JinjaError
from jinja2.sandbox import SandboxedEnvironment

from questboard.errors import TemplateError
from questboard.models import CATEGORIES, GRANULARITIES, QuestTemplate

logger = logging.getLogger(__name__)

BASE_DIR = Path(__file__).resolve().parent / "catalog"
DEFAULT_CATALOG = BASE_DIR / "quest_templates.json"

T = TypeVar("T")

_env = SandboxedEnvironment(autoescape=False, keep_trailing_newline=False, undefined=ChainableUndefined)
_spaces = re.compile(r"[ \t]{2,}")


def _load_json(path: Path, fallback):
    if not path.exists():
        return fallback
    return json.loads(path.read_text(encoding="utf-8-sig"))


def stable_seed(*parts: str) -> int:
    raw = "::".join(parts).encode("utf-8")
    return int(hashlib.sha256(raw).hexdigest()[:16], 16)


def weighted_choice(rng: random.Random, entries: list[T], weight: Callable[[T], float]) -> T | None:
    if not entries:
        return None
    weights = [max(0.0, float(weight(entry))) for entry in entries]
    total = sum(weights)
    if total <= 0:
        return entries[0]
    pick = rng.random() * total
    running = 0.0
    for entry, w in zip(entries, weights):
        running += w
        if pick < running:
            return entry
    return entries[-1]


def render_text(text: str, values: Mapping[str, str]) -> str:
    """Substitute ``{{field}}`` placeholders from ``values``.

    Fields without a value, or attributes of them, render as nothing; the
    doubled whitespace they leave behind is collapsed. Any other rendering
    failure is reported as :class:`TemplateError`.
    """
    if "{{" not in text:
        return text
    try:
        rendered = _env.from_string(text).render(**dict(values))
    except (JinjaError, TypeError) as exc:
        raise TemplateError(f"Bad placeholder in {text!r}: {exc}") from exc
    return _spaces.sub(" ", rendered).strip()


def validate_template(template: QuestTemplate) -> None:
    problems = []
    if not template.id:
        problems.append("missing id")
    if template.category not in CATEGORIES:
        problems.append(f"unknown category {template.category!r}")
    if not 1 <= template.difficulty <= 5:
        problems.append(f"difficulty {template.difficulty} outside 1-5")
    if template.base_xp < 1:
        problems.append("baseXP must be positive")
    if not template.allowed_granularities:
        problems.append("no allowed granularities")
    for granularity in template.allowed_granularities:
        if granularity not in GRANULARITIES:
            problems.append(f"unknown granularity {granularity!r}")
    if float(template.weight) < 0:
        problems.append("negative weight")
    texts = [template.title, template.description or ""]
    texts += [v.title for v in template.variations] + [v.description or "" for v in template.variations]
    for text in texts:
        try:
            _env.parse(text)
        except TemplateSyntaxError as exc:
            problems.append(f"bad placeholder in {text!r}: {exc.message}")
    if problems:
        raise TemplateError(f"Template {template.id or '<unnamed>'}: " + "; ".join(problems))


def parse_templates(raw: Iterable[dict]) -> list[QuestTemplate]:
    templates = []
    seen = set()
    for entry in raw:
        try:
            template = QuestTemplate.from_dict(entry)
        except (KeyError, TypeError, ValueError) as exc:
            raise TemplateError(f"Malformed template {entry!r}: {exc}") from exc
        validate_template(template)
        if template.id in seen:
            raise TemplateError(f"Duplicate template id {template.id}")
        seen.add(template.id)
        templates.append(template)
    return templates


def load_default_catalog() -> list[QuestTemplate]:
    data = _load_json(DEFAULT_CATALOG, {"templates": []})
    if isinstance(data, dict):
        data = data.get("templates", [])
    return parse_templates(data)
