"""
Agent services module.

Services:
- agenda_service: Bulk generation, day sync and staged edits for staff
- audit_service: Append-only activity log (Redis stream)
- availability_service: Live open-slot queries for the chat flow
- conversation_service: Per-caller driver around ConversationFSM
- escalation_service: Human handoff queue
"""
