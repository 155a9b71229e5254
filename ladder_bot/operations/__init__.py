"""
Operations Layer

Business logic for the ladder. Operations classes compose database access
into transactional workflows and raise LadderError subclasses for any
rejected action; the cogs translate those into replies.

Each module focuses on one ledger:
- PlayerOperations: players, ranks, cooldowns and counters
- ChallengeOperations: the challenge state machine
- ResultOperations / CorrectionOperations: submitted and corrected scores
- HistoryOperations / PredictionOperations: match log and spectator picks
- MatchCompletion: effects of a finished match
- AdminOperations: admin overrides
"""
