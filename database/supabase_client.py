import threading

from supabase import create_client, Client

from app.core.config import settings

# One client per thread: repository calls run in worker threads
# (FastAPI threadpool and asyncio.to_thread from the notification checker)
_thread_local = threading.local()


def get_supabase_client() -> Client:
    """Get a thread-local Supabase client authenticated with the service role key."""
    if not settings.supabase_secret_key:
        raise RuntimeError(
            "Supabase service key not configured. "
            "Set SUPABASE_SECRET_KEY to enable server-side table access."
        )

    if not hasattr(_thread_local, "client"):
        _thread_local.client = create_client(
            settings.supabase_url,
            settings.supabase_secret_key,
        )
    return _thread_local.client


def reset_supabase_client() -> None:
    """Drop the thread-local client so the next call reconnects."""
    if hasattr(_thread_local, "client"):
        delattr(_thread_local, "client")
