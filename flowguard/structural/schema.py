#flowguard/structural/schema.py
from jsonschema import Draft7Validator
from jsonschema.exceptions import best_match

# Shape every node entry is expected to have before it is sent to the platform.
NODE_SCHEMA = {
    "type": "object",
    "required": ["id", "name", "type"],
    "properties": {
        "id": {
            "type": "string",
            "minLength": 1
        },
        "name": {
            "type": "string",
            "minLength": 1
        },
        "type": {
            "type": "string",
            "minLength": 1
        },
        "typeVersion": {
            "type": "number"
        },
        # [x, y] canvas coordinates
        "position": {
            "type": "array",
            "items": {"type": "number"},
            "minItems": 2,
            "maxItems": 2
        },
        "parameters": {
            "type": "object"
        },
        "credentials": {
            "type": "object",
            "additionalProperties": {
                "type": "object",
                "properties": {
                    "id": {"type": ["string", "null"]},
                    "name": {"type": "string"}
                }
            }
        },
        "disabled": {"type": "boolean"},
        "continueOnFail": {"type": "boolean"},
        "onError": {"type": "string"}
    },
    "additionalProperties": True
}

# On-disk snapshot document: {"metadata": {...}, "workflow": {..., "nodes": [...]}}
SNAPSHOT_SCHEMA = {
    "type": "object",
    "required": ["metadata", "workflow"],
    "properties": {
        "metadata": {
            "type": "object"
        },
        "workflow": {
            "type": "object",
            "required": ["nodes"],
            "properties": {
                "nodes": {"type": "array"}
            }
        }
    }
}

# Fields list_snapshots needs to display and relocate a snapshot.
METADATA_SCHEMA = {
    "type": "object",
    "required": ["backupId", "workflowId", "timestamp"],
    "properties": {
        "backupId": {"type": "string"},
        "workflowId": {"type": "string"},
        "timestamp": {"type": "string"},
        "description": {"type": "string"},
        "workflowName": {"type": ["string", "null"]}
    }
}

node_validator = Draft7Validator(NODE_SCHEMA)
snapshot_validator = Draft7Validator(SNAPSHOT_SCHEMA)
metadata_validator = Draft7Validator(METADATA_SCHEMA)


def first_error(validator: Draft7Validator, instance) -> str:
    """Message of the most relevant schema violation, or '' when the instance is valid."""
    e = best_match(validator.iter_errors(instance))
    if e is None:
        return ""
    where = "/".join(str(p) for p in e.path)
    return f"{where}: {e.message}" if where else e.message
