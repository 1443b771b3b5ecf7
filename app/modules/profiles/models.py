# Supabase table: profiles
# This file documents the expected database schema
# Actual operations are handled via Supabase SDK in service.py

"""
Expected Supabase table structure:

profiles:
- id: uuid (primary key, foreign key to auth.users.id)
- full_name: text (nullable)
- Email: text (nullable) - capitalised column name, filled by the signup trigger
- notification_preferences: jsonb (nullable)
- created_at: timestamp (default: now())
- updated_at: timestamp (default: now())
"""
