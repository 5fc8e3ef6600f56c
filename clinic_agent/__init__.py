"""Clinic chat agent, an AI receptionist for Dr. Priyanka's Naturopathy Clinic.

Architecture Overview
=====================

Each chat request carries the whole conversation.  A turn runs through a
small **LangGraph** StateGraph:

1. **generate**: the system prompt (clinic facts, FAQ table, booking
   grammar) plus history go to the model gateway, which tries the
   configured providers one after another until one answers.  The reply is
   split into visible text and an optional ``create_appointment`` block.

2. **book**: the block's service name is matched against the catalog, its
   time normalised to ``HH:MM``, and a single appointment row is written.
   The patient sees a confirmation or a failure message, never the block.

3. **decline**: a block arrived but no database is configured; the
   patient is asked to call the clinic.

Key Design Decisions
--------------------
- **Providers**: free OpenRouter models in a fixed priority order via
  ``langchain-openai``, with an optional Anthropic fallback.  Each provider
  is tried once per turn, SDK retries off, low temperature.
- **Rate limits**: if every provider fails and at least one was rate
  limited the user gets a friendly "call us" reply (HTTP 200) instead of an
  error.
- **Database**: Supabase's PostgREST API over ``httpx`` with retries for
  reads and log appends; appointment inserts are never retried.
- **Logging of conversations**: fire-and-forget on a thread pool.
- **Dual Interface**: FastAPI server (production) + CLI chat loop.

Package Structure
-----------------
- ``clinic_agent/agent.py``  : orchestrator (LangGraph turn graph)
- ``clinic_agent/config.py`` : configuration from environment variables
- ``clinic_agent/models.py`` : domain value objects
- ``clinic_agent/prompts.py``: system prompt and fixed replies
- ``clinic_agent/server.py`` : FastAPI application
- ``clinic_agent/main.py``   : CLI chat interface
- ``clinic_agent/services/`` : model gateway, Supabase client, chat log, cache, metrics
- ``clinic_agent/tools/``    : action extraction, service resolution, time
  normalisation, booking, FAQ
- ``clinic_agent/api/``      : FastAPI routes and Pydantic schemas
"""
