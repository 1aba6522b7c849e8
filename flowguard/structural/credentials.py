# flowguard/structural/credentials.py
"""
Checks that every credential a node references exists on the platform and
has the type the node expects.

A node carries its credentials as `{credentialType: {"id": ..., "name": ...}}`.
"""
from __future__ import annotations

from typing import Any, Dict, Mapping

from flowguard.platform import PlatformAPI
from flowguard.structural.report import ValidationReport
from flowguard.utils.graph import node_id_of
from flowguard.utils.logger import get_logger

logger = get_logger("structural")


def _available_credentials(platform: PlatformAPI) -> Dict[str, Dict[str, Any]]:
    creds = platform.list_credentials()
    return {
        str(c["id"]): c
        for c in creds
        if isinstance(c, Mapping) and c.get("id") is not None
    }


def validate_credentials(workflow: Dict[str, Any], platform: PlatformAPI) -> ValidationReport:
    """
    Missing or mistyped credential references are errors. A reference
    without an id is a warning, and so is a credential list that cannot be
    fetched.
    """
    report = ValidationReport()
    if not isinstance(workflow, Mapping):
        report.error("missing_field", "Workflow must be a JSON object")
        return report
    nodes = workflow.get("nodes")
    if not isinstance(nodes, list) or not nodes:
        return report

    try:
        available = _available_credentials(platform)
    except Exception as e:
        logger.warning("credential lookup failed: %s", e)
        report.warn("credentials_check_failed", "Could not validate credentials (credential service unavailable)")
        return report

    for node in nodes:
        nid = node_id_of(node)
        creds = node.get("credentials") if nid is not None else None
        if not isinstance(creds, Mapping) or not creds:
            continue
        name = node.get("name") or nid

        for cred_type, ref in creds.items():
            if not isinstance(ref, Mapping):
                continue
            cred_id = ref.get("id")
            if cred_id is None or cred_id == "":
                report.warn(
                    "missing_credential_id",
                    f"Node '{name}' has credential type '{cred_type}' without ID",
                    node_id=nid,
                )
                continue

            credential = available.get(str(cred_id))
            if credential is None:
                report.error(
                    "credential_not_found",
                    f"Node '{name}' references non-existent credential ID '{cred_id}'",
                    node_id=nid,
                )
            elif credential.get("type") != cred_type:
                report.error(
                    "credential_type_mismatch",
                    f"Node '{name}' expects '{cred_type}' but credential is '{credential.get('type')}'",
                    node_id=nid,
                )
    return report
