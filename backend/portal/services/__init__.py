"""
Services Layer

- bracket_engine / bracket_generation / tournament_status: pure functions over
  in-memory models, no session
- advancement_service / standings_service: take a Session, write match slots
  and standings
- none of them depend on HTTP request/response objects
"""
