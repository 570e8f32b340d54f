import hashlib
import uuid

SENSITIVE_FIELDS = ["name", "email", "phone"]


def hash_field(data: str) -> str:
    return hashlib.sha256(data.encode()).hexdigest()


def anonymize_data(data: dict) -> dict:
    data = dict(data)
    for field in SENSITIVE_FIELDS:
        if field in data and data[field]:
            data[field] = hash_field(data[field])
    return data


def new_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:8]}"
