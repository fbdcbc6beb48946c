"""Built-in and custom architecture rules."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence

from .models import Component, Connection

logger = logging.getLogger(__name__)

SEVERITIES = ("error", "warning", "info")
SEVERITY_LABELS = {"error": "ERROR", "warning": "WARN", "info": "INFO"}
SPOF_THRESHOLD = 5

RuleCheck = Callable[[Sequence[Component], Sequence[Connection]], List["RuleViolation"]]


@dataclass
class RuleViolation:
    rule_id: str
    severity: str
    message: str
    component: Optional[str] = None
    suggestion: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "rule_id": self.rule_id,
            "severity": self.severity,
            "message": self.message,
        }
        if self.component is not None:
            payload["component"] = self.component
        if self.suggestion:
            payload["suggestion"] = self.suggestion
        return payload


@dataclass
class ArchitectureRule:
    id: str
    name: str
    description: str
    severity: str
    check: RuleCheck


# ===================================================================
# Built-in rules
# ===================================================================

def _orphans(components: Sequence[Component], connections: Sequence[Connection]) -> List[RuleViolation]:
    connected = set()
    for conn in connections:
        connected.add(conn.from_id)
        connected.add(conn.to_id)
    return [
        RuleViolation(
            rule_id="orphan-component",
            severity="warning",
            component=c.name,
            message=f"{c.name} has no connections, may be unused or untracked",
            suggestion="Verify this component is used, or remove it if not needed",
        )
        for c in components
        if c.component_id not in connected
    ]


def _database_without_backend(components: Sequence[Component], connections: Sequence[Connection]) -> List[RuleViolation]:
    backend_ids = {c.component_id for c in components if c.role.layer == "backend"}
    violations = []
    for db in components:
        if db.role.layer != "database":
            continue
        if any(conn.to_id == db.component_id and conn.from_id in backend_ids for conn in connections):
            continue
        violations.append(RuleViolation(
            rule_id="database-no-backend",
            severity="warning",
            component=db.name,
            message=f"{db.name} (database) has no incoming connections from backend layer",
            suggestion="Ensure backend services connect to this database, or verify it is accessed via another path",
        ))
    return violations


def _frontend_direct_db(components: Sequence[Component], connections: Sequence[Connection]) -> List[RuleViolation]:
    by_id = {c.component_id: c for c in components}
    violations = []
    for conn in connections:
        source = by_id.get(conn.from_id)
        target = by_id.get(conn.to_id)
        if not source or not target:
            continue
        if source.role.layer == "frontend" and target.role.layer == "database":
            violations.append(RuleViolation(
                rule_id="frontend-direct-db",
                severity="error",
                component=source.name,
                message=f"{source.name} (frontend) connects directly to {target.name} (database)",
                suggestion="Add a backend API layer between frontend and database",
            ))
    return violations


def _status_rule(rule_id: str, status: str, severity: str, message: str, suggestion: str) -> RuleCheck:
    def check(components: Sequence[Component], connections: Sequence[Connection]) -> List[RuleViolation]:
        return [
            RuleViolation(
                rule_id=rule_id,
                severity=severity,
                component=c.name,
                message=message.format(name=c.name),
                suggestion=suggestion.format(name=c.name),
            )
            for c in components
            if c.status == status
        ]
    return check


def _single_point_of_failure(components: Sequence[Component], connections: Sequence[Connection]) -> List[RuleViolation]:
    dependents: Dict[str, int] = {}
    for conn in connections:
        dependents[conn.to_id] = dependents.get(conn.to_id, 0) + 1
    return [
        RuleViolation(
            rule_id="single-point-of-failure",
            severity="warning",
            component=c.name,
            message=f"{c.name} has {dependents[c.component_id]} dependents, single point of failure",
            suggestion="Consider adding redundancy or splitting responsibilities",
        )
        for c in components
        if c.role.layer == "backend" and dependents.get(c.component_id, 0) > SPOF_THRESHOLD
    ]


def get_builtin_rules() -> List[ArchitectureRule]:
    return [
        ArchitectureRule(
            "orphan-component", "Orphan Component",
            "Component has 0 connections (neither from nor to)", "warning", _orphans,
        ),
        ArchitectureRule(
            "database-no-backend", "Database Without Backend",
            "Database layer component with no incoming connection from backend", "warning",
            _database_without_backend,
        ),
        ArchitectureRule(
            "frontend-direct-db", "Frontend Direct Database Access",
            "Frontend connects directly to database (skipping backend)", "error", _frontend_direct_db,
        ),
        ArchitectureRule(
            "unused-package", "Unused Package", 'Package component with status "unused"', "info",
            _status_rule(
                "unused-package", "unused", "info",
                "{name} is detected but unused", "Remove {name} from the project dependencies",
            ),
        ),
        ArchitectureRule(
            "vulnerable-dependency", "Vulnerable Dependency", 'Package with status "vulnerable"', "error",
            _status_rule(
                "vulnerable-dependency", "vulnerable", "error",
                "{name} has known security vulnerabilities", "Update {name} to a patched version",
            ),
        ),
        ArchitectureRule(
            "deprecated-dependency", "Deprecated Dependency", 'Package with status "deprecated"', "warning",
            _status_rule(
                "deprecated-dependency", "deprecated", "warning",
                "{name} is deprecated", "Find a replacement package before it becomes unmaintained",
            ),
        ),
        ArchitectureRule(
            "single-point-of-failure", "Single Point of Failure",
            f"Backend component with >{SPOF_THRESHOLD} dependents", "warning", _single_point_of_failure,
        ),
    ]


# ===================================================================
# Custom rules  (<store>/rules.json)
# ===================================================================

def matches_pattern(component: Component, pattern: Optional[Dict[str, Any]]) -> bool:
    """Attribute match; a missing pattern matches every component."""
    if not pattern:
        return True
    if pattern.get("layer") and component.role.layer != pattern["layer"]:
        return False
    if pattern.get("type") and component.type != pattern["type"]:
        return False
    if pattern.get("name") and str(pattern["name"]).lower() not in component.name.lower():
        return False
    return True


def _custom_check(spec: Dict[str, Any]) -> RuleCheck:
    rule_id = spec["id"]
    severity = spec["severity"]
    title = spec.get("name") or rule_id
    description = spec.get("description") or None
    forbidden = spec.get("forbidden")
    required = spec.get("required")

    def check(components: Sequence[Component], connections: Sequence[Connection]) -> List[RuleViolation]:
        by_id = {c.component_id: c for c in components}
        violations: List[RuleViolation] = []

        if isinstance(forbidden, dict):
            for conn in connections:
                source = by_id.get(conn.from_id)
                target = by_id.get(conn.to_id)
                if not source or not target:
                    continue
                if matches_pattern(source, forbidden.get("from")) and matches_pattern(target, forbidden.get("to")):
                    violations.append(RuleViolation(
                        rule_id=rule_id,
                        severity=severity,
                        component=source.name,
                        message=f"{source.name} -> {target.name} violates rule: {title}",
                        suggestion=description,
                    ))

        if isinstance(required, dict):
            for source in components:
                if not matches_pattern(source, required.get("from")):
                    continue
                satisfied = any(
                    conn.from_id == source.component_id
                    and conn.to_id in by_id
                    and matches_pattern(by_id[conn.to_id], required.get("to"))
                    for conn in connections
                )
                if not satisfied:
                    violations.append(RuleViolation(
                        rule_id=rule_id,
                        severity=severity,
                        component=source.name,
                        message=required.get("message") or f"{source.name} is missing a required connection: {title}",
                        suggestion=description,
                    ))
        return violations

    return check


def convert_custom_rule(spec: Any) -> Optional[ArchitectureRule]:
    if not isinstance(spec, dict) or not spec.get("id") or spec.get("severity") not in SEVERITIES:
        return None
    return ArchitectureRule(
        id=spec["id"],
        name=spec.get("name") or spec["id"],
        description=spec.get("description", ""),
        severity=spec["severity"],
        check=_custom_check(spec),
    )


def load_custom_rules(rules_path: Optional[Path]) -> List[ArchitectureRule]:
    """Rules declared in a JSON array file; any read or parse error means none."""
    if rules_path is None or not rules_path.exists():
        return []
    try:
        payload = json.loads(rules_path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        logger.warning("Ignoring unreadable rules file %s: %s", rules_path, exc)
        return []
    if not isinstance(payload, list):
        logger.warning("Ignoring rules file %s: expected a JSON array", rules_path)
        return []
    rules = []
    for spec in payload:
        rule = convert_custom_rule(spec)
        if rule is None:
            logger.warning("Skipping invalid custom rule: %r", spec)
            continue
        rules.append(rule)
    return rules


# ===================================================================
# Evaluation
# ===================================================================

def check_rules(
    components: Sequence[Component],
    connections: Sequence[Connection],
    rules: Optional[Sequence[ArchitectureRule]] = None,
) -> List[RuleViolation]:
    violations: List[RuleViolation] = []
    for rule in rules if rules is not None else get_builtin_rules():
        violations.extend(rule.check(components, connections))
    return violations


def summarize_violations(violations: Sequence[RuleViolation]) -> Dict[str, Any]:
    by_severity = {severity: 0 for severity in SEVERITIES}
    for violation in violations:
        by_severity[violation.severity] = by_severity.get(violation.severity, 0) + 1
    return {"total": len(violations), "by_severity": by_severity}


def format_rules_output(violations: Sequence[RuleViolation], severity: Optional[str] = None) -> str:
    selected = [v for v in violations if severity is None or v.severity == severity]
    if not selected:
        return "No architecture rule violations found."

    lines = [f"Architecture rules: {len(selected)} violation(s)", ""]
    for level in SEVERITIES:
        group = [v for v in selected if v.severity == level]
        if not group:
            continue
        lines.append(f"{SEVERITY_LABELS[level]} ({len(group)}):")
        for violation in group:
            target = f" [{violation.component}]" if violation.component else ""
            lines.append(f"  - {violation.message}{target}")
            if violation.suggestion:
                lines.append(f"    -> {violation.suggestion}")
        lines.append("")
    return "\n".join(lines)
