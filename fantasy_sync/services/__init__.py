"""
Services for the fantasy game sync.

- partner: partner game API client and payload models
- sync: game reconciliation (orchestrator, due-game scheduler, job runner)
- triggers: campaign trigger evaluation and dispatch
- alert_service: operations webhook alerts
"""
