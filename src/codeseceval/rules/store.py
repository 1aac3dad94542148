"""Rule store — rule table, rule sets and categories with search and statistics."""

from __future__ import annotations

import dataclasses
import logging
import time
from collections.abc import Iterable
from dataclasses import dataclass, field

from codeseceval.errors import DuplicateKey, NotFound, Protected, ValidationError
from codeseceval.events import Signal
from codeseceval.rules.loader import (
    category_from_dict,
    category_to_dict,
    load_builtin,
    parse_pattern,
    rule_from_dict,
    rule_set_from_dict,
    rule_set_to_dict,
    rule_to_dict,
)
from codeseceval.rules.models import (
    ImportReport,
    Rule,
    RuleCategory,
    RuleDocs,
    RuleSet,
    RuleStatistics,
    SearchCriteria,
    Severity,
)
from codeseceval.scanner.languages import normalize_language

logger = logging.getLogger(__name__)

STORE_VERSION = "1.0.0"

# Fields a caller may change through update_rule / batch_update
_MUTABLE_FIELDS = {
    "name",
    "description",
    "severity",
    "category",
    "languages",
    "pattern",
    "cwe_id",
    "risk_score",
    "enabled",
    "tags",
    "docs",
}


@dataclass
class RuleEvents:
    rule_added: Signal[Rule] = field(default_factory=lambda: Signal("rule_added"))
    rule_updated: Signal[Rule] = field(default_factory=lambda: Signal("rule_updated"))
    rule_deleted: Signal[str] = field(default_factory=lambda: Signal("rule_deleted"))
    rule_set_added: Signal[RuleSet] = field(
        default_factory=lambda: Signal("rule_set_added")
    )
    rule_set_updated: Signal[RuleSet] = field(
        default_factory=lambda: Signal("rule_set_updated")
    )
    rule_set_deleted: Signal[str] = field(
        default_factory=lambda: Signal("rule_set_deleted")
    )


class RuleStore:
    """Owns every Rule object. Rule sets hold ids into this table.

    Iteration order is insertion order; search results are never sorted.
    """

    def __init__(self, load_defaults: bool = True) -> None:
        self.events = RuleEvents()
        self._rules: dict[str, Rule] = {}
        self._rule_sets: dict[str, RuleSet] = {}
        self._categories: dict[str, RuleCategory] = {}
        if load_defaults:
            self._load_defaults()

    @property
    def version(self) -> str:
        return STORE_VERSION

    def _load_defaults(self) -> None:
        categories, rules, rule_sets = load_builtin()
        for category in categories:
            self._categories[category.id] = category
        for rule in rules:
            self._rules[rule.id] = rule
        for rule_set in rule_sets:
            self._rule_sets[rule_set.id] = rule_set
        logger.debug(
            "Loaded %d built-in rules, %d rule sets", len(rules), len(rule_sets)
        )

    def reset(self) -> None:
        """Drop everything and reload the built-in catalogue."""
        self._rules.clear()
        self._rule_sets.clear()
        self._categories.clear()
        self._load_defaults()

    # --- Rules ---

    def add_rule(self, rule: Rule | dict) -> Rule:
        """Insert a custom rule. Raises DuplicateKey if the id is taken."""
        if isinstance(rule, dict):
            rule = rule_from_dict(rule, builtin=False)
        if rule.id in self._rules:
            raise DuplicateKey(f"Rule '{rule.id}' already exists")
        rule = dataclasses.replace(rule, builtin=False)
        self._rules[rule.id] = rule
        self.events.rule_added.emit(rule)
        return rule

    def update_rule(self, rule_id: str, **changes) -> Rule:
        """Merge ``changes`` into a rule. Built-in rules may be tuned too."""
        current = self._rules.get(rule_id)
        if current is None:
            raise NotFound(f"Rule '{rule_id}' not found")
        updated = dataclasses.replace(current, **_coerce_changes(changes))
        self._rules[rule_id] = updated
        self.events.rule_updated.emit(updated)
        return updated

    def delete_rule(self, rule_id: str) -> None:
        """Remove a custom rule and scrub its id from every rule set."""
        rule = self._rules.get(rule_id)
        if rule is None:
            raise NotFound(f"Rule '{rule_id}' not found")
        if rule.builtin:
            raise Protected(f"Built-in rule '{rule_id}' can be disabled, not deleted")

        del self._rules[rule_id]
        now = time.time()
        for set_id, rule_set in list(self._rule_sets.items()):
            if rule_id in rule_set.rules:
                self._rule_sets[set_id] = dataclasses.replace(
                    rule_set,
                    rules=tuple(r for r in rule_set.rules if r != rule_id),
                    updated_at=now,
                )
        self.events.rule_deleted.emit(rule_id)

    def get_rule(self, rule_id: str) -> Rule | None:
        return self._rules.get(rule_id)

    def all_rules(self) -> list[Rule]:
        return list(self._rules.values())

    def enabled_rules(self) -> list[Rule]:
        return [r for r in self._rules.values() if r.enabled]

    def toggle(self, rule_id: str, enabled: bool) -> Rule:
        return self.update_rule(rule_id, enabled=enabled)

    def batch_update(self, rule_ids: Iterable[str], **changes) -> int:
        """Apply ``changes`` to each known id. Unknown ids are skipped."""
        coerced = _coerce_changes(changes)
        count = 0
        for rule_id in rule_ids:
            if rule_id not in self._rules:
                logger.debug("batch_update: skipping unknown rule %s", rule_id)
                continue
            self.update_rule(rule_id, **coerced)
            count += 1
        return count

    def search(self, criteria: SearchCriteria) -> list[Rule]:
        return [r for r in self._rules.values() if _matches(r, criteria)]

    def statistics(self) -> RuleStatistics:
        stats = RuleStatistics()
        for rule in self._rules.values():
            stats.total += 1
            if rule.enabled:
                stats.enabled += 1
            if rule.builtin:
                stats.builtin += 1
            else:
                stats.custom += 1
            stats.by_severity[rule.severity.value] += 1
            stats.by_category[rule.category] = stats.by_category.get(rule.category, 0) + 1
            for lang in rule.languages:
                stats.by_language[lang] = stats.by_language.get(lang, 0) + 1
        stats.disabled = stats.total - stats.enabled
        return stats

    # --- Rule sets ---

    def add_rule_set(self, rule_set: RuleSet | dict) -> RuleSet:
        if isinstance(rule_set, dict):
            rule_set = rule_set_from_dict(rule_set)
        if rule_set.id in self._rule_sets:
            raise DuplicateKey(f"Rule set '{rule_set.id}' already exists")
        self._check_members(rule_set.rules)
        self._rule_sets[rule_set.id] = rule_set
        self.events.rule_set_added.emit(rule_set)
        return rule_set

    def update_rule_set(self, set_id: str, **changes) -> RuleSet:
        current = self._rule_sets.get(set_id)
        if current is None:
            raise NotFound(f"Rule set '{set_id}' not found")
        if "id" in changes:
            raise ValidationError("Rule set id cannot be changed")
        if "rules" in changes:
            changes["rules"] = tuple(changes["rules"])
            self._check_members(changes["rules"])
        changes["updated_at"] = time.time()
        updated = dataclasses.replace(current, **changes)
        self._rule_sets[set_id] = updated
        self.events.rule_set_updated.emit(updated)
        return updated

    def delete_rule_set(self, set_id: str) -> None:
        if set_id not in self._rule_sets:
            raise NotFound(f"Rule set '{set_id}' not found")
        del self._rule_sets[set_id]
        self.events.rule_set_deleted.emit(set_id)

    def get_rule_set(self, set_id: str) -> RuleSet | None:
        return self._rule_sets.get(set_id)

    def list_rule_sets(self) -> list[RuleSet]:
        return list(self._rule_sets.values())

    def rule_set_rules(self, set_id: str) -> list[Rule]:
        rule_set = self._rule_sets.get(set_id)
        if rule_set is None:
            raise NotFound(f"Rule set '{set_id}' not found")
        return [self._rules[r] for r in rule_set.rules if r in self._rules]

    def _check_members(self, rule_ids: Iterable[str]) -> None:
        unknown = [r for r in rule_ids if r not in self._rules]
        if unknown:
            raise ValidationError(f"Unknown rule ids: {', '.join(unknown)}")

    # --- Categories ---

    def add_category(self, category: RuleCategory | dict) -> RuleCategory:
        if isinstance(category, dict):
            category = category_from_dict(category)
        if category.id in self._categories:
            raise DuplicateKey(f"Category '{category.id}' already exists")
        self._categories[category.id] = category
        return category

    def get_category(self, category_id: str) -> RuleCategory | None:
        return self._categories.get(category_id)

    def list_categories(self) -> list[RuleCategory]:
        return list(self._categories.values())

    # --- Import / export ---

    def export_rules(
        self,
        rule_ids: Iterable[str] | None = None,
        include_rule_sets: bool = True,
    ) -> dict:
        if rule_ids is None:
            rules = list(self._rules.values())
        else:
            rules = [self._rules[r] for r in rule_ids if r in self._rules]
        return {
            "version": STORE_VERSION,
            "exported_at": time.time(),
            "rules": [rule_to_dict(r) for r in rules],
            "rule_sets": (
                [rule_set_to_dict(s) for s in self._rule_sets.values()]
                if include_rule_sets
                else []
            ),
            "categories": [category_to_dict(c) for c in self._categories.values()],
        }

    def import_rules(self, bundle: dict, overwrite: bool = False) -> ImportReport:
        """Merge an exported bundle. One bad record never aborts the import."""
        report = ImportReport()

        for raw in bundle.get("categories") or []:
            try:
                category = category_from_dict(raw)
            except ValidationError as e:
                report.errors.append(f"category: {e}")
                continue
            if overwrite or category.id not in self._categories:
                self._categories[category.id] = category

        for raw in bundle.get("rules") or []:
            rule_id = raw.get("id", "?") if isinstance(raw, dict) else "?"
            try:
                existing = self._rules.get(rule_id)
                if existing is not None and not overwrite:
                    report.skipped += 1
                    continue
                # An overwritten built-in keeps its protection
                builtin = existing is not None and existing.builtin
                rule = rule_from_dict(raw, builtin=builtin)
            except ValidationError as e:
                report.errors.append(f"rule {rule_id}: {e}")
                continue
            self._rules[rule.id] = rule
            report.imported += 1
            if existing is None:
                self.events.rule_added.emit(rule)
            else:
                self.events.rule_updated.emit(rule)

        for raw in bundle.get("rule_sets") or []:
            set_id = raw.get("id", "?") if isinstance(raw, dict) else "?"
            try:
                rule_set = rule_set_from_dict(raw)
                self._check_members(rule_set.rules)
            except ValidationError as e:
                report.errors.append(f"rule set {set_id}: {e}")
                continue
            if rule_set.id in self._rule_sets and not overwrite:
                continue
            self._rule_sets[rule_set.id] = rule_set
            self.events.rule_set_added.emit(rule_set)

        logger.info(
            "Imported %d rules (%d skipped, %d errors)",
            report.imported,
            report.skipped,
            len(report.errors),
        )
        return report

    def restore(self, rules: Iterable[Rule], rule_sets: list[RuleSet]) -> None:
        """Apply persisted records without emitting events.

        Built-in rules missing from ``rules`` keep their packaged definition.
        A non-empty ``rule_sets`` replaces the whole rule-set table.
        """
        for rule in rules:
            current = self._rules.get(rule.id)
            builtin = current.builtin if current is not None else False
            self._rules[rule.id] = dataclasses.replace(rule, builtin=builtin)
        if rule_sets:
            self._rule_sets = {
                s.id: dataclasses.replace(
                    s, rules=tuple(r for r in s.rules if r in self._rules)
                )
                for s in rule_sets
            }


def _coerce_changes(changes: dict) -> dict:
    """Validate and normalize partial rule fields."""
    unknown = set(changes) - _MUTABLE_FIELDS
    if unknown:
        raise ValidationError(f"Cannot update rule fields: {', '.join(sorted(unknown))}")

    out = dict(changes)
    if "severity" in out and not isinstance(out["severity"], Severity):
        try:
            out["severity"] = Severity(out["severity"])
        except ValueError as e:
            raise ValidationError(f"Invalid severity: {out['severity']}") from e
    if "languages" in out:
        langs = frozenset(normalize_language(x) for x in out["languages"])
        if not langs:
            raise ValidationError("Rule languages must not be empty")
        out["languages"] = langs
    if "pattern" in out:
        out["pattern"] = parse_pattern(out["pattern"])
    if "tags" in out:
        out["tags"] = tuple(out["tags"])
    if "docs" in out and isinstance(out["docs"], dict):
        docs = out["docs"]
        out["docs"] = RuleDocs(
            vulnerable=docs.get("vulnerable", ""),
            secure=docs.get("secure", ""),
            references=tuple(docs.get("references", ())),
        )
    for key in ("name", "description", "category"):
        if key in out and not str(out[key]).strip():
            raise ValidationError(f"Rule {key} must not be empty")
    return out


def _matches(rule: Rule, c: SearchCriteria) -> bool:
    if c.keyword:
        kw = c.keyword.lower()
        if not (
            kw in rule.name.lower()
            or kw in rule.description.lower()
            or any(kw in t.lower() for t in rule.tags)
        ):
            return False
    if c.severities and rule.severity not in c.severities:
        return False
    if c.categories and rule.category not in c.categories:
        return False
    if c.languages:
        wanted = {normalize_language(x) for x in c.languages}
        if not wanted & rule.languages:
            return False
    if c.enabled is not None and rule.enabled != c.enabled:
        return False
    if c.builtin is not None and rule.builtin != c.builtin:
        return False
    if c.tags and not set(c.tags) & set(rule.tags):
        return False
    return True
