"""create extraction pipeline tables

Revision ID: 001_scraping_pipeline
Revises:
Create Date: 2026-10-18

  • job_listings: postings enriched by the pipeline
  • scraped_job_listing_data: insert-only HTML cache keyed by (url, valid_until)
  • scraping_attempts: one row per attempt, status + retry bookkeeping
  • scraping_events: ordered step log per attempt (unique step_order)
  • html_scraping_logs: per-pass selector diagnostics
  • llm_provider_configs / llm_api_logs: AI provider chain and call log
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID, JSONB


# revision identifiers
revision = "001_scraping_pipeline"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    # ── job_listings ──────────────────────────────────────────────────────
    op.create_table(
        "job_listings",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("url", sa.Text(), nullable=False),
        sa.Column("title", sa.String(255), nullable=True),
        sa.Column("company_name", sa.String(255), nullable=True),
        sa.Column("location", sa.String(255), nullable=True),
        sa.Column("remote_type", sa.String(20), nullable=True),
        sa.Column("salary_min", sa.Integer(), nullable=True),
        sa.Column("salary_max", sa.Integer(), nullable=True),
        sa.Column("salary_currency", sa.String(10), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("requirements", sa.Text(), nullable=True),
        sa.Column("responsibilities", sa.Text(), nullable=True),
        sa.Column("benefits", sa.Text(), nullable=True),
        sa.Column("extraction_confidence", sa.Float(), nullable=True),
        sa.Column("low_confidence", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("last_extracted_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_job_listings_updated_at", "job_listings", ["updated_at"])

    # ── scraped_job_listing_data ──────────────────────────────────────────
    op.create_table(
        "scraped_job_listing_data",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("url", sa.Text(), nullable=False),
        sa.Column("domain", sa.String(255), nullable=False),
        sa.Column("raw_html", sa.Text(), nullable=False),
        sa.Column("cleaned_html", sa.Text(), nullable=True),
        sa.Column("http_status", sa.Integer(), nullable=True),
        sa.Column("content_hash", sa.String(64), nullable=False),
        sa.Column("fetched_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("valid_until", sa.DateTime(timezone=True), nullable=False),
        sa.Column("fetch_metadata", JSONB(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_scraped_data_url_valid_until", "scraped_job_listing_data", ["url", "valid_until"])
    op.create_index("ix_scraped_job_listing_data_content_hash", "scraped_job_listing_data", ["content_hash"])
    op.create_index("ix_scraped_job_listing_data_updated_at", "scraped_job_listing_data", ["updated_at"])

    # ── scraping_attempts ─────────────────────────────────────────────────
    op.create_table(
        "scraping_attempts",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("job_listing_id", UUID(as_uuid=True), sa.ForeignKey("job_listings.id"), nullable=False),
        sa.Column(
            "scraped_job_listing_data_id",
            UUID(as_uuid=True),
            sa.ForeignKey("scraped_job_listing_data.id"),
            nullable=True,
        ),
        sa.Column("url", sa.Text(), nullable=False),
        sa.Column("domain", sa.String(255), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("extraction_method", sa.String(20), nullable=True),
        sa.Column("provider", sa.String(100), nullable=True),
        sa.Column("http_status", sa.Integer(), nullable=True),
        sa.Column("confidence_score", sa.Float(), nullable=True),
        sa.Column("low_confidence", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("duration_seconds", sa.Float(), nullable=True),
        sa.Column("error_type", sa.String(100), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("failed_step", sa.String(50), nullable=True),
        sa.Column("retry_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("next_retry_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("request_metadata", JSONB(), nullable=True),
        sa.Column("response_metadata", JSONB(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_scraping_attempts_job_listing_id", "scraping_attempts", ["job_listing_id"])
    op.create_index("ix_scraping_attempts_domain", "scraping_attempts", ["domain"])
    op.create_index("ix_scraping_attempts_status", "scraping_attempts", ["status"])
    op.create_index("ix_scraping_attempts_updated_at", "scraping_attempts", ["updated_at"])
    op.create_index("ix_scraping_attempts_listing_status", "scraping_attempts", ["job_listing_id", "status"])
    op.create_index("ix_scraping_attempts_domain_created", "scraping_attempts", ["domain", "created_at"])

    # ── scraping_events ───────────────────────────────────────────────────
    op.create_table(
        "scraping_events",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("scraping_attempt_id", UUID(as_uuid=True), sa.ForeignKey("scraping_attempts.id"), nullable=False),
        sa.Column("event_type", sa.String(50), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="started"),
        sa.Column("step_order", sa.Integer(), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("duration_ms", sa.Integer(), nullable=True),
        sa.Column("input_payload", JSONB(), nullable=True),
        sa.Column("output_payload", JSONB(), nullable=True),
        sa.Column("error_type", sa.String(100), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("metadata", JSONB(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("scraping_attempt_id", "step_order", name="uq_event_attempt_step"),
    )
    op.create_index("ix_scraping_events_scraping_attempt_id", "scraping_events", ["scraping_attempt_id"])
    op.create_index("ix_scraping_events_event_type", "scraping_events", ["event_type"])
    op.create_index("ix_scraping_events_updated_at", "scraping_events", ["updated_at"])

    # ── html_scraping_logs ────────────────────────────────────────────────
    op.create_table(
        "html_scraping_logs",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("scraping_attempt_id", UUID(as_uuid=True), sa.ForeignKey("scraping_attempts.id"), nullable=True),
        sa.Column("job_listing_id", UUID(as_uuid=True), sa.ForeignKey("job_listings.id"), nullable=True),
        sa.Column("url", sa.Text(), nullable=False),
        sa.Column("domain", sa.String(255), nullable=False),
        sa.Column("board_type", sa.String(50), nullable=True),
        sa.Column("extractor_name", sa.String(100), nullable=True),
        sa.Column("html_size", sa.Integer(), nullable=True),
        sa.Column("cleaned_html_size", sa.Integer(), nullable=True),
        sa.Column("duration_ms", sa.Integer(), nullable=True),
        sa.Column("field_results", JSONB(), nullable=False, server_default="{}"),
        sa.Column("selectors_tried", JSONB(), nullable=False, server_default="{}"),
        sa.Column("fields_attempted", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("fields_extracted", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("extraction_rate", sa.Float(), nullable=False, server_default="0"),
        sa.Column("status", sa.String(20), nullable=False, server_default="failed"),
        sa.Column("error_type", sa.String(100), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_html_scraping_logs_scraping_attempt_id", "html_scraping_logs", ["scraping_attempt_id"])
    op.create_index("ix_html_scraping_logs_domain", "html_scraping_logs", ["domain"])
    op.create_index("ix_html_scraping_logs_status", "html_scraping_logs", ["status"])
    op.create_index("ix_html_scraping_logs_updated_at", "html_scraping_logs", ["updated_at"])

    # ── llm_provider_configs ──────────────────────────────────────────────
    op.create_table(
        "llm_provider_configs",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("name", sa.String(100), nullable=False, unique=True),
        sa.Column("provider_type", sa.String(50), nullable=False),
        sa.Column("llm_model", sa.String(100), nullable=False),
        sa.Column("priority", sa.Integer(), nullable=False, server_default="100"),
        sa.Column("enabled", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("timeout_seconds", sa.Integer(), nullable=False, server_default="60"),
        sa.Column("max_tokens", sa.Integer(), nullable=False, server_default="4096"),
        sa.Column("temperature", sa.Float(), nullable=False, server_default="0"),
        sa.Column("api_endpoint", sa.Text(), nullable=True),
        sa.Column("settings", JSONB(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_llm_provider_configs_priority", "llm_provider_configs", ["priority"])
    op.create_index("ix_llm_provider_configs_updated_at", "llm_provider_configs", ["updated_at"])

    # ── llm_api_logs ──────────────────────────────────────────────────────
    op.create_table(
        "llm_api_logs",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("scraping_attempt_id", UUID(as_uuid=True), sa.ForeignKey("scraping_attempts.id"), nullable=True),
        sa.Column("provider", sa.String(100), nullable=False),
        sa.Column("model", sa.String(100), nullable=False),
        sa.Column("operation_type", sa.String(50), nullable=False, server_default="job_extraction"),
        sa.Column("input_tokens", sa.Integer(), nullable=True),
        sa.Column("output_tokens", sa.Integer(), nullable=True),
        sa.Column("total_tokens", sa.Integer(), nullable=True),
        sa.Column("latency_ms", sa.Integer(), nullable=True),
        sa.Column("estimated_cost_cents", sa.Float(), nullable=True),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("error_type", sa.String(100), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("confidence_score", sa.Float(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_llm_api_logs_scraping_attempt_id", "llm_api_logs", ["scraping_attempt_id"])
    op.create_index("ix_llm_api_logs_provider", "llm_api_logs", ["provider"])
    op.create_index("ix_llm_api_logs_updated_at", "llm_api_logs", ["updated_at"])


def downgrade() -> None:
    op.drop_table("llm_api_logs")
    op.drop_table("llm_provider_configs")
    op.drop_table("html_scraping_logs")
    op.drop_table("scraping_events")
    op.drop_table("scraping_attempts")
    op.drop_table("scraped_job_listing_data")
    op.drop_table("job_listings")
