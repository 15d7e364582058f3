"""
Services layer - Business logic goes here.
Keep services focused on one lifecycle concern (intake, workflow, rewards, etc.)

DESIGN PRINCIPLE:
- Services contain business logic, NOT routes
- Services receive their repositories explicitly (see app/dependencies.py)
- AI assists classification, never blocks report ingestion
"""
