from __future__ import annotations

import os

# Settings are read at import time; give them a throwaway environment.
os.environ.setdefault("SUPABASE_URL", "https://project.supabase.co")
os.environ.setdefault("SUPABASE_SERVICE_ROLE_KEY", "service-role-key")
os.environ.setdefault("GEMINI_API_KEY", "test-gemini-key")
