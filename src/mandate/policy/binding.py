"""
Policy-to-spec binding checks.

A policy is only evaluated against the spec it is bound to, inside the
spec's domain, issuing a verdict the spec allows, over signals the spec
declares. The first violation aborts evaluation of the whole snapshot.
"""

from mandate.errors import PolicyBindingError
from mandate.policy.conditions import CONTEXT_PREFIX, SCOPE_PREFIX
from mandate.schema import DecisionSpec, Policy


def signal_name_for_field(field: str) -> str:
    """
    Return the signal a condition field refers to.

    Namespaces are skipped, so "context.amount" and "amount" both name
    the signal "amount".
    """
    for prefix in (CONTEXT_PREFIX, SCOPE_PREFIX):
        if field.startswith(prefix):
            field = field[len(prefix):]
            break
    return field.split(".")[0]


def _binding_error(policy: Policy, spec: DecisionSpec, rule: str, detail: str) -> PolicyBindingError:
    return PolicyBindingError(
        message=f"Policy {policy.id!r} {detail} (spec: {spec.label})",
        policy_id=policy.id,
        spec_id=spec.spec_id,
        spec_version=spec.version,
        rule=rule,
    )


def validate_policy_against_spec(policy: Policy, spec: DecisionSpec) -> None:
    """
    Check one policy's binding.

    Raises:
        PolicyBindingError: On the first violated binding rule
    """
    if not policy.spec_id:
        raise _binding_error(policy, spec, "spec_id_required", "is missing spec_id")

    if not policy.scope_id:
        raise _binding_error(policy, spec, "scope_id_required", "is missing scope_id")

    if policy.spec_id != spec.spec_id:
        raise _binding_error(
            policy, spec, "spec_id_mismatch",
            f"is bound to spec {policy.spec_id!r}",
        )

    if policy.scope.domain != spec.domain:
        raise _binding_error(
            policy, spec, "domain_mismatch",
            f"scope domain {policy.scope.domain!r} does not match spec domain {spec.domain!r}",
        )

    if policy.verdict not in spec.allowed_verdicts:
        allowed = ", ".join(v.value for v in spec.allowed_verdicts)
        raise _binding_error(
            policy, spec, "verdict_not_allowed",
            f"issues {policy.verdict.value}, spec allows only [{allowed}]",
        )

    declared = {s.name for s in spec.signals}
    for condition in policy.conditions:
        name = signal_name_for_field(condition.field)
        if name not in declared:
            raise _binding_error(
                policy, spec, "undeclared_signal",
                f"references undeclared signal {name!r}",
            )


def validate_policies_against_spec(policies: list[Policy], spec: DecisionSpec) -> None:
    """
    Check every policy's binding, in order.

    Raises:
        PolicyBindingError: On the first violation found
    """
    for policy in policies:
        validate_policy_against_spec(policy, spec)
