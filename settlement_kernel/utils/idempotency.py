"""
Idempotency key generation utilities.

Every creation step in a settlement cascade is keyed by a natural business
key.  The key is stored on the created row under a unique constraint, so a
replayed or concurrent step finds the existing row instead of creating a
duplicate (EntityStore.get_or_create).
"""

from uuid import UUID


def generate_idempotency_key(
    producer: str,
    kind: str,
    reference: UUID | str,
) -> str:
    """
    Generate an idempotency key.

    Format: producer:kind:reference

    Example:
        >>> generate_idempotency_key("nota", "invoice", "NOTA-B1-1736931600000")
        "nota:invoice:NOTA-B1-1736931600000"
    """
    return f"{producer}:{kind}:{reference}"


def parse_idempotency_key(key: str) -> tuple[str, str, str]:
    """
    Parse an idempotency key into (producer, kind, reference).

    Raises:
        ValueError: If key format is invalid.
    """
    parts = key.split(":", 2)
    if len(parts) != 3:
        raise ValueError(f"Invalid idempotency key format: {key}")
    return parts[0], parts[1], parts[2]


def accepted_record_key(debtor_id: UUID | str) -> str:
    return generate_idempotency_key("debtor_review", "accepted", debtor_id)


def batch_nota_key(batch_id: str) -> str:
    return generate_idempotency_key("nota", "batch", batch_id)


def claim_nota_key(claim_id: str) -> str:
    return generate_idempotency_key("nota", "claim", claim_id)


def invoice_key(nota_number: str) -> str:
    return generate_idempotency_key("nota", "invoice", nota_number)


def auto_intent_key(contract_id: str, nota_number: str) -> str:
    return generate_idempotency_key("nota", "intent", f"{contract_id}/{nota_number}")


def settlement_payment_key(invoice_id: UUID | str) -> str:
    return generate_idempotency_key("settlement", "payment", invoice_id)


def received_payment_key(payment_ref: str) -> str:
    return generate_idempotency_key("reconciliation", "payment", payment_ref)


def payment_share_key(payment_id: UUID | str, debtor_id: UUID | str) -> str:
    return generate_idempotency_key("settlement", "share", f"{payment_id}/{debtor_id}")


def adjustment_key(nota_number: str, generation: int) -> str:
    return generate_idempotency_key("reconciliation", "adjustment", f"{nota_number}/{generation}")
