"""
Error kinds raised by the competition engine.

All of them describe caller or business-rule problems, detected before any
state is changed. The web layer turns them into JSON error responses.
"""


class CompetitionError(Exception):
    code = 'COMPETITION_ERROR'
    status = 400

    def __init__(self, message: str, **context):
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self) -> dict:
        data = {'error': self.message, 'code': self.code}
        if self.context:
            data['context'] = self.context
        return data


class NotFound(CompetitionError):
    code = 'NOT_FOUND'
    status = 404


class InvalidState(CompetitionError):
    code = 'INVALID_STATE'


class InvalidTeam(CompetitionError):
    code = 'INVALID_TEAM'


class InsufficientTeams(CompetitionError):
    code = 'INSUFFICIENT_TEAMS'


class NoCompletedGames(CompetitionError):
    code = 'NO_COMPLETED_GAMES'


class SetLimitExceeded(CompetitionError):
    code = 'SET_LIMIT_EXCEEDED'


class ValidationError(CompetitionError):
    code = 'VALIDATION_ERROR'


class AlreadyRegistered(CompetitionError):
    code = 'ALREADY_EXISTS'
    status = 409


class TournamentFull(CompetitionError):
    code = 'TOURNAMENT_FULL'
