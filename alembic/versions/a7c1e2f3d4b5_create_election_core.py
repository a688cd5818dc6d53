"""create_election_core

Revision ID: a7c1e2f3d4b5
Revises:
Create Date: 2026-10-17 09:00:00.000000

"""

from collections.abc import Sequence

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "a7c1e2f3d4b5"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


SCHEMA_SQL = """
-- ============================================
-- ELECTIONS TABLE - time-boxed elections
-- ============================================
CREATE TABLE IF NOT EXISTS elections (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    title VARCHAR(255) NOT NULL,
    description TEXT,

    -- Voting window is [start_date, end_date)
    start_date TIMESTAMP WITH TIME ZONE NOT NULL,
    end_date TIMESTAMP WITH TIME ZONE NOT NULL,

    status VARCHAR(20) NOT NULL DEFAULT 'active'
        CHECK (status IN ('draft', 'active', 'completed', 'cancelled')),

    -- Flipped once by the last approving commissioner, never reset
    is_result_public BOOLEAN NOT NULL DEFAULT FALSE,
    results_published_at TIMESTAMP WITH TIME ZONE,

    created_by UUID NOT NULL,
    created_at TIMESTAMP WITH TIME ZONE DEFAULT CURRENT_TIMESTAMP,
    updated_at TIMESTAMP WITH TIME ZONE DEFAULT CURRENT_TIMESTAMP,

    CONSTRAINT valid_election_dates CHECK (end_date > start_date)
);

CREATE INDEX IF NOT EXISTS idx_elections_status ON elections(status);
CREATE INDEX IF NOT EXISTS idx_elections_dates ON elections(start_date, end_date);

-- ============================================
-- CANDIDATES TABLE
-- ============================================
CREATE TABLE IF NOT EXISTS candidates (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    election_id UUID NOT NULL REFERENCES elections(id) ON DELETE CASCADE,
    name VARCHAR(255) NOT NULL,
    party VARCHAR(255),
    description TEXT,
    image_url TEXT,
    position INTEGER NOT NULL DEFAULT 0,
    created_at TIMESTAMP WITH TIME ZONE DEFAULT CURRENT_TIMESTAMP,
    updated_at TIMESTAMP WITH TIME ZONE DEFAULT CURRENT_TIMESTAMP,

    -- Target of the votes (candidate_id, election_id) foreign key
    CONSTRAINT uq_candidates_id_election UNIQUE (id, election_id)
);

CREATE INDEX IF NOT EXISTS idx_candidates_election ON candidates(election_id, position);

-- ============================================
-- ELIGIBLE_VOTERS TABLE - per-election allowlist
-- ============================================
CREATE TABLE IF NOT EXISTS eligible_voters (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    user_id UUID NOT NULL,
    election_id UUID NOT NULL REFERENCES elections(id) ON DELETE CASCADE,
    created_at TIMESTAMP WITH TIME ZONE DEFAULT CURRENT_TIMESTAMP,

    CONSTRAINT uq_eligible_voters_user_election UNIQUE (user_id, election_id)
);

CREATE INDEX IF NOT EXISTS idx_eligible_voters_election ON eligible_voters(election_id);

-- ============================================
-- VOTES TABLE - the ledger
-- ============================================
CREATE TABLE IF NOT EXISTS votes (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    voter_id UUID NOT NULL,
    election_id UUID NOT NULL REFERENCES elections(id) ON DELETE RESTRICT,
    candidate_id UUID NOT NULL,
    status VARCHAR(20) NOT NULL DEFAULT 'confirmed' CHECK (status = 'confirmed'),
    created_at TIMESTAMP WITH TIME ZONE DEFAULT CURRENT_TIMESTAMP,

    -- At most one ballot per voter and election
    CONSTRAINT uq_votes_voter_election UNIQUE (voter_id, election_id),
    -- The candidate must belong to the same election
    CONSTRAINT fk_votes_candidate_same_election
        FOREIGN KEY (candidate_id, election_id)
        REFERENCES candidates(id, election_id) ON DELETE RESTRICT
);

CREATE INDEX IF NOT EXISTS idx_votes_election_candidate ON votes(election_id, candidate_id);

-- ============================================
-- ELECTION_COMMISSIONERS TABLE - approval ratchet
-- ============================================
CREATE TABLE IF NOT EXISTS election_commissioners (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    user_id UUID NOT NULL,
    election_id UUID NOT NULL REFERENCES elections(id) ON DELETE CASCADE,
    has_approved BOOLEAN NOT NULL DEFAULT FALSE,
    approved_at TIMESTAMP WITH TIME ZONE,
    created_at TIMESTAMP WITH TIME ZONE DEFAULT CURRENT_TIMESTAMP,

    CONSTRAINT uq_election_commissioners_user_election UNIQUE (user_id, election_id),
    CONSTRAINT approval_has_timestamp CHECK (has_approved = (approved_at IS NOT NULL))
);

CREATE INDEX IF NOT EXISTS idx_election_commissioners_user ON election_commissioners(user_id);

-- ============================================
-- ELECTION_AUDIT_LOG TABLE
-- ============================================
CREATE TABLE IF NOT EXISTS election_audit_log (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    election_id UUID NOT NULL REFERENCES elections(id) ON DELETE CASCADE,
    action VARCHAR(100) NOT NULL,
    actor_id UUID,
    details JSONB,
    created_at TIMESTAMP WITH TIME ZONE DEFAULT CURRENT_TIMESTAMP
);

CREATE INDEX IF NOT EXISTS idx_election_audit_log_election
    ON election_audit_log(election_id, created_at DESC);
"""


DOWNGRADE_SQL = """
DROP TABLE IF EXISTS election_audit_log;
DROP TABLE IF EXISTS election_commissioners;
DROP TABLE IF EXISTS votes;
DROP TABLE IF EXISTS eligible_voters;
DROP TABLE IF EXISTS candidates;
DROP TABLE IF EXISTS elections;
"""


def upgrade() -> None:
    """Create the election, ledger and approval tables."""
    op.execute(SCHEMA_SQL)


def downgrade() -> None:
    """Drop the election, ledger and approval tables."""
    op.execute(DOWNGRADE_SQL)
