from .dispatcher import MitigationDispatcher, MitigationOutcome
