"""MusicAsk: live song requests for DJ sets, with realtime status updates."""
