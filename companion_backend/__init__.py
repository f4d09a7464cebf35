"""Backend for the workshop companion app.

Route handlers in server.py stay thin; the pieces live here:
- participant session persistence over a pluggable key-value store
- visibility-gated polling cadence and the workshop poller
- typed participant/organizer clients for the workshop backend API

Participant session ids are opaque UUID4 tokens and are only ever stored in
the participant's own cookie; never log them.
"""
