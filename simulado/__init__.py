"""
Simulado: question selection and study-session state for exam candidates.
Backed by Supabase (auth, tables, RPCs, edge functions).
"""
__version__ = "0.1.0"
