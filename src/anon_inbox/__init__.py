"""
Anon-Inbox Service.

Anonymous messaging microservice following Clean Architecture principles.

Architecture:
    - Domain Layer: Entities, value objects, acceptance gate, domain services
    - Infrastructure Layer: Repositories (in-memory, MongoDB), JWT, password hashing,
      suggestion provider client

Usage:
    # Application
    from anon_inbox.main import app, create_app

    # Domain layer
    from anon_inbox.domain import MessageService, AcceptanceGate, User, Message

    # Configuration
    from anon_inbox.config import InboxServiceSettings
"""
__version__ = "1.0.0"
