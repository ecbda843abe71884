"""Keyword, name-candidate and path-shape helpers shared by the collectors."""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import PurePosixPath

from plancheck.settings import InferenceRules

_WORD_PATTERN = re.compile(r"[A-Za-z][A-Za-z0-9]*")
_CAMEL_SPLIT_PATTERN = re.compile(r"[A-Z]+(?=[A-Z][a-z])|[A-Z]?[a-z]+|[A-Z]+|\d+")
_IDENTIFIER_PATTERN = re.compile(r"\b([A-Z][a-z0-9]+(?:[A-Z][a-z0-9]+)+|[a-z][a-z0-9]+(?:[A-Z][a-z0-9]+)+)\b")
_NON_ALNUM = re.compile(r"[^a-z0-9]")
_TEST_NAME_PATTERN = re.compile(r"(\.test\.|\.spec\.|(^|/)test_[^/]+\.py$|_test\.[a-z0-9]+$)", re.IGNORECASE)
_GENERIC_STEMS = {"index", "__init__", "main", "mod", "lib"}


def unique(values) -> list[str]:
    seen: set[str] = set()
    ordered: list[str] = []
    for raw in values:
        value = (raw or "").strip()
        if not value or value in seen:
            continue
        seen.add(value)
        ordered.append(value)
    return ordered


def compact(value: str) -> str:
    """Lowercase with every non-alphanumeric character removed."""
    return _NON_ALNUM.sub("", (value or "").lower())


def split_identifier(token: str) -> list[str]:
    if "_" in token or "-" in token:
        parts = re.split(r"[_\-]+", token)
        words: list[str] = []
        for part in parts:
            words.extend(split_identifier(part))
        return words
    return [piece.lower() for piece in _CAMEL_SPLIT_PATTERN.findall(token)]


def ing_stems(word: str) -> list[str]:
    """``limiting`` -> ``limit``/``limiter``; ``caching`` -> ``cache``/``cacher``."""
    if not word.endswith("ing") or len(word) < 6:
        return []
    base = word[:-3]
    if len(base) >= 3 and base[-1] == base[-2] and base[-1] not in "aeiouls":
        base = base[:-1]
    stems = [base, f"{base}er"]
    if base[-1] in "cgvz" or base.endswith(("ch", "at", "ir", "ur")):
        stems.insert(1, f"{base}e")
    return unique(stems)


def name_variants(words: list[str]) -> list[str]:
    """PascalCase, camelCase, kebab-case and snake_case forms of ``words``."""
    cleaned = [word.lower() for word in words if word]
    if not cleaned:
        return []
    pascal = "".join(word[:1].upper() + word[1:] for word in cleaned)
    camel = cleaned[0] + "".join(word[:1].upper() + word[1:] for word in cleaned[1:])
    return unique([pascal, camel, "-".join(cleaned), "_".join(cleaned)])


@dataclass
class CandidateTerms:
    keywords: list[str] = field(default_factory=list)
    families: dict[str, list[str]] = field(default_factory=dict)
    name_words: list[list[str]] = field(default_factory=list)
    identifiers: list[str] = field(default_factory=list)
    category_dirs: list[str] = field(default_factory=list)

    def names(self) -> list[str]:
        values: list[str] = list(self.identifiers)
        for words in self.name_words:
            values.extend(name_variants(words))
        return unique(values)

    def compact_names(self) -> list[str]:
        return unique([compact(name) for name in self.names()])

    def family_of(self, word: str) -> str | None:
        token = word.lower()
        for keyword, forms in self.families.items():
            if token in forms:
                return keyword
        return None


def infer_terms(text: str, rules: InferenceRules) -> CandidateTerms:
    """Derive search terms from a free-text task description."""
    raw = text or ""
    stop_words = {word.lower() for word in rules.stop_words}
    raw_words: list[str] = []
    for token in _WORD_PATTERN.findall(raw):
        raw_words.extend(split_identifier(token))

    keywords: list[str] = []
    for word in raw_words:
        if word in stop_words or len(word) < rules.min_keyword_length:
            continue
        if word not in keywords:
            keywords.append(word)
    keywords = keywords[: rules.max_keywords]

    families: dict[str, list[str]] = {}
    for keyword in keywords:
        families[keyword] = unique([keyword, *ing_stems(keyword)])

    name_words: list[list[str]] = []
    for left, right in zip(keywords, keywords[1:]):
        for right_form in families[right]:
            name_words.append([left, right_form])
    identifiers = unique(_IDENTIFIER_PATTERN.findall(raw))
    for identifier in identifiers:
        parts = split_identifier(identifier)
        if len(parts) >= 2 and parts not in name_words:
            name_words.append(parts)

    lowered = {word.lower() for word in raw_words}
    category_dirs: list[str] = []
    for trigger, dirs in rules.category_dirs.items():
        trigger_token = trigger.lower()
        if trigger_token in lowered or f"{trigger_token}s" in lowered:
            category_dirs.extend(dirs)

    return CandidateTerms(
        keywords=keywords,
        families=families,
        name_words=name_words,
        identifiers=identifiers,
        category_dirs=unique(category_dirs),
    )


def line_words(line: str) -> set[str]:
    words: set[str] = set()
    for token in _WORD_PATTERN.findall(line or ""):
        words.update(split_identifier(token))
    return words


def is_test_path(path: str, rules: InferenceRules) -> bool:
    normalized = (path or "").replace("\\", "/")
    if _TEST_NAME_PATTERN.search(normalized):
        return True
    test_dirs = {name.lower() for name in rules.test_dir_names}
    parts = [part.lower() for part in PurePosixPath(normalized).parts[:-1]]
    return any(part in test_dirs for part in parts)


def is_build_output(path: str, rules: InferenceRules) -> bool:
    parts = [part.lower() for part in PurePosixPath((path or "").replace("\\", "/")).parts[:-1]]
    blocked = {name.lower() for name in rules.build_output_dirs}
    return any(part in blocked for part in parts)


def is_source_path(path: str, rules: InferenceRules) -> bool:
    return PurePosixPath(path or "").suffix.lower() in set(rules.source_extensions)


def module_name(path: str) -> str:
    """Name other files use to import ``path`` (``index``/``__init__`` fall back to the directory)."""
    pure = PurePosixPath((path or "").replace("\\", "/"))
    stem = pure.name.split(".", 1)[0]
    if stem.lower() in _GENERIC_STEMS and pure.parent.name:
        return pure.parent.name
    return stem


def strip_test_affixes(path: str) -> str:
    """Strip test decorations: ``rateLimiter.test.ts`` / ``test_rate_limiter.py`` -> base."""
    name = PurePosixPath((path or "").replace("\\", "/")).name
    stem = name.split(".", 1)[0]
    if stem.startswith("test_"):
        stem = stem[len("test_"):]
    if stem.endswith("_test"):
        stem = stem[: -len("_test")]
    return stem
