"""
PostgreSQL schema for the Envelope Budget API.

Idempotent DDL: safe to apply on every deploy. Balances are never stored; the
`envelope_balances` view derives them from the transaction history.
"""

from __future__ import annotations

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS envelopes (
    id             BIGSERIAL PRIMARY KEY,
    name           TEXT NOT NULL CHECK (length(btrim(name)) > 0),
    initial_amount NUMERIC(14, 2) NOT NULL DEFAULT 0,
    start_date     TIMESTAMPTZ,
    end_date       TIMESTAMPTZ,
    active         BOOLEAN NOT NULL DEFAULT TRUE,
    created_at     TIMESTAMPTZ NOT NULL DEFAULT now()
);

CREATE TABLE IF NOT EXISTS transactions (
    id          BIGSERIAL PRIMARY KEY,
    envelope_id BIGINT NOT NULL REFERENCES envelopes (id) ON DELETE CASCADE,
    direction   TEXT NOT NULL CHECK (direction IN ('in', 'out')),
    amount      NUMERIC(14, 2) NOT NULL CHECK (amount > 0),
    who         TEXT NOT NULL CHECK (length(btrim(who)) > 0),
    note        TEXT,
    occurred_at TIMESTAMPTZ NOT NULL DEFAULT clock_timestamp()
);

CREATE INDEX IF NOT EXISTS transactions_envelope_occurred_idx
    ON transactions (envelope_id, occurred_at DESC);

CREATE INDEX IF NOT EXISTS transactions_who_occurred_idx
    ON transactions (who, occurred_at DESC);

CREATE OR REPLACE VIEW envelope_balances AS
SELECT
    e.id,
    e.name,
    e.initial_amount,
    e.start_date,
    e.end_date,
    e.active,
    e.created_at,
    e.initial_amount
        + COALESCE(SUM(t.amount) FILTER (WHERE t.direction = 'in'), 0)
        - COALESCE(SUM(t.amount) FILTER (WHERE t.direction = 'out'), 0) AS balance
FROM envelopes e
LEFT JOIN transactions t ON t.envelope_id = e.id
GROUP BY e.id;
"""

TRUNCATE_SQL = "TRUNCATE TABLE transactions, envelopes RESTART IDENTITY CASCADE;"


__all__ = ["SCHEMA_SQL", "TRUNCATE_SQL"]
