"""
Migration: Add learning pipeline tables.

Creates 7 tables:
1. user_action_log - append-only wizard action log (source of truth)
2. scope_item_patterns - add/remove/modify and win/loss counters per scope item
3. pricing_patterns - pricing adjustment events and per-user aggregates
4. geographic_patterns - price multiplier / win rate / common items per area
5. photo_categorization_learning - photo category + caption per position
6. user_learned_preferences - server-side adaptive profile
7. aggregation_watermarks - high-watermark per aggregation job

Enum columns are stored as VARCHAR holding the enum value.
"""
from sqlalchemy import create_engine, text
import os

# Use same DB URL pattern as main app
DATABASE_URL = os.getenv(
    "DATABASE_URL",
    f"postgresql://{os.getenv('USER', 'postgres')}@localhost:5432/scopegen"
)


def table_exists(conn, table_name: str) -> bool:
    """Check if a table exists in the database."""
    result = conn.execute(text("""
        SELECT EXISTS (
            SELECT FROM information_schema.tables
            WHERE table_name = :table_name
        )
    """), {"table_name": table_name})
    return result.fetchone()[0]


def run_migration():
    """Create all learning tables."""
    engine = create_engine(DATABASE_URL)

    with engine.connect() as conn:
        # =================================================================
        # TABLE 1: user_action_log
        # =================================================================
        if table_exists(conn, "user_action_log"):
            print("user_action_log table already exists")
        else:
            conn.execute(text("""
                CREATE TABLE user_action_log (
                    id VARCHAR(36) PRIMARY KEY,
                    user_id VARCHAR(36) NOT NULL,
                    action_type VARCHAR(40) NOT NULL,
                    proposal_id VARCHAR(36),
                    trade_id VARCHAR(100),
                    job_type_id VARCHAR(100),
                    zipcode VARCHAR(10),
                    city VARCHAR(100),
                    state VARCHAR(50),
                    neighborhood VARCHAR(100),
                    payload JSON,
                    outcome_type VARCHAR(40),
                    outcome_value DOUBLE PRECISION,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP NOT NULL
                )
            """))
            conn.execute(text("""
                CREATE INDEX ix_user_action_log_user_id ON user_action_log(user_id)
            """))
            conn.execute(text("""
                CREATE INDEX ix_user_action_log_proposal_id ON user_action_log(proposal_id)
            """))
            conn.execute(text("""
                CREATE INDEX ix_user_action_log_type_created ON user_action_log(action_type, created_at)
            """))
            conn.execute(text("""
                CREATE INDEX ix_user_action_log_user_created ON user_action_log(user_id, created_at)
            """))
            print("Created user_action_log table")

        # =================================================================
        # TABLE 2: scope_item_patterns
        # =================================================================
        if table_exists(conn, "scope_item_patterns"):
            print("scope_item_patterns table already exists")
        else:
            conn.execute(text("""
                CREATE TABLE scope_item_patterns (
                    id VARCHAR(36) PRIMARY KEY,
                    trade_id VARCHAR(100) NOT NULL,
                    job_type_id VARCHAR(100) NOT NULL,
                    scope_item VARCHAR(500) NOT NULL,
                    zipcode VARCHAR(10),
                    added_count INTEGER NOT NULL DEFAULT 0,
                    removed_count INTEGER NOT NULL DEFAULT 0,
                    modified_count INTEGER NOT NULL DEFAULT 0,
                    won_with_item INTEGER NOT NULL DEFAULT 0,
                    lost_with_item INTEGER NOT NULL DEFAULT 0,
                    is_from_template BOOLEAN DEFAULT FALSE,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """))
            conn.execute(text("""
                CREATE INDEX ix_scope_item_patterns_trade_job ON scope_item_patterns(trade_id, job_type_id)
            """))
            print("Created scope_item_patterns table")

        # =================================================================
        # TABLE 3: pricing_patterns
        # =================================================================
        if table_exists(conn, "pricing_patterns"):
            print("pricing_patterns table already exists")
        else:
            conn.execute(text("""
                CREATE TABLE pricing_patterns (
                    id VARCHAR(36) PRIMARY KEY,
                    user_id VARCHAR(36),
                    trade_id VARCHAR(100) NOT NULL,
                    job_type_id VARCHAR(100) NOT NULL,
                    job_size INTEGER NOT NULL DEFAULT 2,
                    zipcode VARCHAR(10),
                    suggested_price_low DOUBLE PRECISION,
                    suggested_price_high DOUBLE PRECISION,
                    final_price_low DOUBLE PRECISION,
                    final_price_high DOUBLE PRECISION,
                    adjustment_percent INTEGER NOT NULL DEFAULT 0,
                    outcome VARCHAR(40),
                    is_aggregate BOOLEAN NOT NULL DEFAULT FALSE,
                    sample_count INTEGER NOT NULL DEFAULT 1,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """))
            conn.execute(text("""
                CREATE INDEX ix_pricing_patterns_user_id ON pricing_patterns(user_id)
            """))
            conn.execute(text("""
                CREATE INDEX ix_pricing_patterns_zipcode ON pricing_patterns(zipcode)
            """))
            conn.execute(text("""
                CREATE INDEX ix_pricing_patterns_lookup ON pricing_patterns(trade_id, job_type_id, job_size)
            """))
            print("Created pricing_patterns table")

        # =================================================================
        # TABLE 4: geographic_patterns
        # =================================================================
        if table_exists(conn, "geographic_patterns"):
            print("geographic_patterns table already exists")
        else:
            conn.execute(text("""
                CREATE TABLE geographic_patterns (
                    id VARCHAR(36) PRIMARY KEY,
                    geo_level VARCHAR(40) NOT NULL,
                    geo_value VARCHAR(100) NOT NULL,
                    trade_id VARCHAR(100),
                    job_type_id VARCHAR(100),
                    pattern_type VARCHAR(40) NOT NULL,
                    pattern_value JSON,
                    sample_count INTEGER NOT NULL DEFAULT 0,
                    confidence INTEGER NOT NULL DEFAULT 0,
                    computed_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """))
            conn.execute(text("""
                CREATE INDEX ix_geographic_patterns_lookup ON geographic_patterns(geo_level, geo_value, pattern_type)
            """))
            print("Created geographic_patterns table")

        # =================================================================
        # TABLE 5: photo_categorization_learning
        # =================================================================
        if table_exists(conn, "photo_categorization_learning"):
            print("photo_categorization_learning table already exists")
        else:
            conn.execute(text("""
                CREATE TABLE photo_categorization_learning (
                    id VARCHAR(36) PRIMARY KEY,
                    user_id VARCHAR(36) NOT NULL,
                    trade_id VARCHAR(100),
                    job_type_id VARCHAR(100),
                    photo_order INTEGER NOT NULL,
                    assigned_category VARCHAR(40) NOT NULL,
                    assigned_caption TEXT,
                    was_auto_assigned BOOLEAN DEFAULT FALSE,
                    was_modified BOOLEAN DEFAULT FALSE,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """))
            conn.execute(text("""
                CREATE INDEX ix_photo_categorization_learning_user_id ON photo_categorization_learning(user_id)
            """))
            conn.execute(text("""
                CREATE INDEX ix_photo_learning_position ON photo_categorization_learning(trade_id, job_type_id, photo_order)
            """))
            print("Created photo_categorization_learning table")

        # =================================================================
        # TABLE 6: user_learned_preferences
        # =================================================================
        if table_exists(conn, "user_learned_preferences"):
            print("user_learned_preferences table already exists")
        else:
            conn.execute(text("""
                CREATE TABLE user_learned_preferences (
                    id VARCHAR(36) PRIMARY KEY,
                    user_id VARCHAR(36) NOT NULL,
                    first_seen TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
                    total_actions INTEGER NOT NULL DEFAULT 0,
                    preferences JSON NOT NULL,
                    profile_version INTEGER NOT NULL DEFAULT 1,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """))
            conn.execute(text("""
                CREATE UNIQUE INDEX ix_user_learned_preferences_user_id ON user_learned_preferences(user_id)
            """))
            print("Created user_learned_preferences table")

        # =================================================================
        # TABLE 7: aggregation_watermarks
        # =================================================================
        if table_exists(conn, "aggregation_watermarks"):
            print("aggregation_watermarks table already exists")
        else:
            conn.execute(text("""
                CREATE TABLE aggregation_watermarks (
                    id VARCHAR(36) PRIMARY KEY,
                    job_name VARCHAR(50) NOT NULL,
                    last_processed_at TIMESTAMP,
                    last_run_at TIMESTAMP,
                    last_run_status VARCHAR(20),
                    CONSTRAINT uq_aggregation_watermarks_job UNIQUE (job_name)
                )
            """))
            print("Created aggregation_watermarks table")

        conn.commit()


if __name__ == "__main__":
    run_migration()
