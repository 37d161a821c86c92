"""Print the Supabase schema for Simulado: bank table, answer log, bookmarks, profiles and RPCs."""
import argparse

from simulado.config import DEFAULT_QUESTIONS_TABLE


def schema_sql(questions_table: str = DEFAULT_QUESTIONS_TABLE) -> str:
    q = f'"{questions_table}"'
    return f"""
-- Question bank (column names follow the spreadsheet it was loaded from)
CREATE TABLE IF NOT EXISTS {q} (
    "ID" BIGINT PRIMARY KEY,
    "Prova" TEXT,
    "Matéria" TEXT,
    "Questão" TEXT,
    "Enunciado" TEXT NOT NULL,
    "AlternativaA" TEXT,
    "AlternativaB" TEXT,
    "AlternativaC" TEXT,
    "AlternativaD" TEXT,
    "Gabarito" CHAR(1) CHECK ("Gabarito" IN ('A', 'B', 'C', 'D')),
    "Fonte_documento" TEXT
);

-- Append-only answer log
CREATE TABLE IF NOT EXISTS user_answers (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    user_id UUID NOT NULL REFERENCES auth.users(id) ON DELETE CASCADE,
    question_id BIGINT NOT NULL,
    is_correct BOOLEAN NOT NULL,
    subject TEXT,
    created_at TIMESTAMPTZ DEFAULT NOW()
);

CREATE TABLE IF NOT EXISTS user_bookmarks (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    user_id UUID NOT NULL REFERENCES auth.users(id) ON DELETE CASCADE,
    question_id BIGINT NOT NULL,
    created_at TIMESTAMPTZ DEFAULT NOW(),
    UNIQUE(user_id, question_id)
);

CREATE TABLE IF NOT EXISTS user_profiles (
    id UUID PRIMARY KEY REFERENCES auth.users(id) ON DELETE CASCADE,
    display_name TEXT,
    is_public BOOLEAN DEFAULT FALSE,
    subscription_plan TEXT DEFAULT 'free'
        CHECK (subscription_plan IN ('free', 'monthly', 'quarterly', 'semiannual')),
    subscription_expires_at TIMESTAMPTZ,
    updated_at TIMESTAMPTZ DEFAULT NOW()
);

CREATE INDEX IF NOT EXISTS idx_user_answers_user_created ON user_answers(user_id, created_at DESC);
CREATE INDEX IF NOT EXISTS idx_user_bookmarks_user ON user_bookmarks(user_id, created_at DESC);
CREATE INDEX IF NOT EXISTS idx_bank_materia ON {q}("Matéria");

-- Random sample over the facet filters; p_exclude_ids is a comma-separated id list
CREATE OR REPLACE FUNCTION get_random_questions(
    p_discipline TEXT[] DEFAULT NULL,
    p_source TEXT[] DEFAULT NULL,
    p_exam TEXT DEFAULT NULL,
    p_search_text TEXT DEFAULT NULL,
    p_limit INT DEFAULT 20,
    p_exclude_ids TEXT DEFAULT NULL
) RETURNS SETOF {q} LANGUAGE sql STABLE AS $$
    SELECT * FROM {q} t
    WHERE (p_discipline IS NULL OR t."Matéria" = ANY(p_discipline))
      AND (p_source IS NULL OR t."Fonte_documento" = ANY(p_source))
      AND (p_exam IS NULL OR t."Prova" = p_exam)
      AND (p_search_text IS NULL OR t."Enunciado" ILIKE '%' || p_search_text || '%')
      AND (p_exclude_ids IS NULL OR NOT (t."ID" = ANY(string_to_array(p_exclude_ids, ',')::BIGINT[])))
    ORDER BY random()
    LIMIT p_limit;
$$;

CREATE OR REPLACE FUNCTION get_questions_count(
    p_discipline TEXT[] DEFAULT NULL,
    p_source TEXT[] DEFAULT NULL,
    p_exam TEXT DEFAULT NULL,
    p_search_text TEXT DEFAULT NULL,
    p_user_id UUID DEFAULT NULL,
    p_only_wrong BOOLEAN DEFAULT FALSE,
    p_only_not_answered BOOLEAN DEFAULT FALSE
) RETURNS BIGINT LANGUAGE sql STABLE AS $$
    SELECT COUNT(*) FROM {q} t
    WHERE (p_discipline IS NULL OR t."Matéria" = ANY(p_discipline))
      AND (p_source IS NULL OR t."Fonte_documento" = ANY(p_source))
      AND (p_exam IS NULL OR t."Prova" = p_exam)
      AND (p_search_text IS NULL OR t."Enunciado" ILIKE '%' || p_search_text || '%')
      AND (NOT p_only_wrong OR EXISTS (
            SELECT 1 FROM user_answers a
            WHERE a.user_id = p_user_id AND a.question_id = t."ID" AND NOT a.is_correct))
      AND (NOT p_only_not_answered OR NOT EXISTS (
            SELECT 1 FROM user_answers a
            WHERE a.user_id = p_user_id AND a.question_id = t."ID"));
$$;

CREATE OR REPLACE FUNCTION get_ranking()
RETURNS TABLE (user_id UUID, display_name TEXT, is_public BOOLEAN, score INT)
LANGUAGE sql STABLE SECURITY DEFINER AS $$
    SELECT p.id, p.display_name, p.is_public,
           ROUND(100.0 * COUNT(*) FILTER (WHERE a.is_correct) / COUNT(*))::INT AS score
    FROM user_profiles p
    JOIN user_answers a ON a.user_id = p.id
    GROUP BY p.id, p.display_name, p.is_public
    ORDER BY score DESC
    LIMIT 50;
$$;
"""


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Print the Simulado schema SQL.")
    parser.add_argument("--table", default=DEFAULT_QUESTIONS_TABLE, help="Question bank table name")
    args = parser.parse_args()
    sql = schema_sql(args.table)
    statements = [s.strip() for s in sql.split(";\n") if s.strip()]
    print(f"Schema has {len(statements)} statements.")
    print("\nNote: Supabase client cannot run DDL; run this SQL in the Supabase SQL Editor:")
    print(sql)
