"""Name replacement rules applied to generated file and folder path segments."""

from __future__ import annotations

import re
from collections.abc import Iterable, Sequence

from core.structure.models import NameRule, Replacement, ReplacementGroups

_ASCII_DIGITS = "0123456789"
_GROUP_DIGITS_RE = re.compile(r"[0-9]{1,2}")


def build_replacement_groups(rules: Iterable[Replacement]) -> ReplacementGroups:
    """Partition rules into both/file/folder groups, dropping blank rules.

    A rule flagged for files and folders lands in ``all_replacements`` and is
    listed once in each of ``file_replacements`` and ``folder_replacements``.
    """

    valid = [rule for rule in rules if rule.search.strip() and rule.replace.strip()]

    both = tuple(
        NameRule(rule.search, rule.replace)
        for rule in valid
        if rule.replace_in_files and rule.replace_in_folders
    )
    files_only = tuple(
        NameRule(rule.search, rule.replace)
        for rule in valid
        if rule.replace_in_files and not rule.replace_in_folders
    )
    folders_only = tuple(
        NameRule(rule.search, rule.replace)
        for rule in valid
        if rule.replace_in_folders and not rule.replace_in_files
    )

    return ReplacementGroups(
        all_replacements=both,
        file_replacements=both + files_only,
        folder_replacements=both + folders_only,
    )


def compile_search_pattern(search: str) -> re.Pattern[str] | None:
    """Compile ``search`` as a regular expression, or None when it is invalid."""

    try:
        return re.compile(search)
    except re.error:
        return None


def apply_replacement(text: str, rule: NameRule) -> str:
    """Replace every match of ``rule.search`` in ``text``.

    The replacement understands ``$1`` to ``$99``, ``$&``, ``$$`` and the
    prefix/suffix forms; backslashes stay literal. Invalid patterns degrade to
    literal substring replacement with the replacement text inserted as-is.
    """

    pattern = compile_search_pattern(rule.search)
    if pattern is None:
        return rule.replace.join(text.split(rule.search))
    return pattern.sub(lambda match: expand_replacement(rule.replace, match), text)


def expand_replacement(template: str, match: re.Match[str]) -> str:
    """Expand dollar substitutions in ``template`` for one regex match."""

    if "$" not in template:
        return template

    pieces: list[str] = []
    index = 0
    length = len(template)
    while index < length:
        char = template[index]
        nxt = template[index + 1] if index + 1 < length else ""
        if char != "$" or not nxt:
            pieces.append(char)
            index += 1
        elif nxt == "$":
            pieces.append("$")
            index += 2
        elif nxt == "&":
            pieces.append(match.group(0))
            index += 2
        elif nxt == "`":
            pieces.append(match.string[: match.start()])
            index += 2
        elif nxt == "'":
            pieces.append(match.string[match.end() :])
            index += 2
        elif nxt in _ASCII_DIGITS:
            group, consumed = _group_reference(template, index + 1, match.re.groups)
            if group is None:
                pieces.append(char)
                index += 1
            else:
                pieces.append(match.group(group) or "")
                index += 1 + consumed
        else:
            pieces.append(char)
            index += 1
    return "".join(pieces)


def _group_reference(template: str, start: int, group_count: int) -> tuple[int | None, int]:
    digits = _GROUP_DIGITS_RE.match(template, start)
    if digits is None:
        return None, 0
    text = digits.group(0)
    if len(text) == 2 and 1 <= int(text) <= group_count:
        return int(text), 2
    if 1 <= int(text[0]) <= group_count:
        return int(text[0]), 1
    return None, 0
