"""Services module - the challenge engine's operation surface."""

from .challenge_service import (
    ChallengeService, create_challenge_service, init_challenge_service, get_challenge_service,
)

__all__ = ['ChallengeService', 'create_challenge_service', 'init_challenge_service', 'get_challenge_service']
