"""Remote collaborators: Supabase store and address geocoding."""

from soap_core.data.supabase_client import SupabaseStore, get_supabase_client
from soap_core.data.geocoding import DEFAULT_COORDINATES, Geocoder

__all__ = [
    "SupabaseStore",
    "get_supabase_client",
    "DEFAULT_COORDINATES",
    "Geocoder",
]
