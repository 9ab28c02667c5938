"""DDL таблиц подсистемы оплаты"""

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS users (
    id TEXT PRIMARY KEY,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE TABLE IF NOT EXISTS products (
    id TEXT PRIMARY KEY,
    title TEXT NOT NULL DEFAULT '',
    duration_days INTEGER,
    duration_label TEXT,
    duration TEXT,
    published_notified_at TIMESTAMPTZ
);

ALTER TABLE products ADD COLUMN IF NOT EXISTS duration TEXT;

CREATE TABLE IF NOT EXISTS invoices (
    id TEXT PRIMARY KEY DEFAULT gen_random_uuid()::text,
    owner_id TEXT NOT NULL,
    product_id TEXT NOT NULL,
    amount INTEGER NOT NULL CHECK (amount > 0),
    description TEXT NOT NULL DEFAULT '',
    gateway_invoice_id TEXT NOT NULL UNIQUE,
    sender_invoice_no TEXT NOT NULL UNIQUE,
    status TEXT NOT NULL DEFAULT 'PENDING'
        CHECK (status IN ('PENDING', 'PAID', 'CANCELLED', 'EXPIRED')),
    paid_amount INTEGER,
    qr_text TEXT,
    qr_image TEXT,
    short_url TEXT,
    deep_links JSONB NOT NULL DEFAULT '[]'::jsonb,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    paid_at TIMESTAMPTZ,
    last_checked_at TIMESTAMPTZ
);

CREATE INDEX IF NOT EXISTS invoices_owner_product_status_idx
    ON invoices (owner_id, product_id, status, created_at DESC);

CREATE TABLE IF NOT EXISTS entitlements (
    user_id TEXT NOT NULL,
    product_id TEXT NOT NULL,
    purchased_at TIMESTAMPTZ NOT NULL,
    expires_at TIMESTAMPTZ,
    duration_days INTEGER,
    duration_label TEXT,
    source_invoice_id TEXT REFERENCES invoices (id),
    amount INTEGER,
    PRIMARY KEY (user_id, product_id)
);

CREATE TABLE IF NOT EXISTS notifications (
    id BIGSERIAL PRIMARY KEY,
    recipient_id TEXT NOT NULL,
    title TEXT NOT NULL,
    body TEXT NOT NULL,
    type TEXT NOT NULL DEFAULT 'info',
    link TEXT,
    read BOOLEAN NOT NULL DEFAULT FALSE,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    read_at TIMESTAMPTZ
);

CREATE INDEX IF NOT EXISTS notifications_recipient_created_idx
    ON notifications (recipient_id, created_at DESC);
"""
