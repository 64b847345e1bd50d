"""
Ladder-wide constants.

This module contains the magic numbers and fixed tables used throughout
the codebase to improve maintainability and clarity.
"""

class LadderConstants:
    """Constants related to ladder positions."""
    
    # Transient position for a row that is being moved. Never part of the
    # dense 1..N sequence; rows left here are picked up by the repair routine.
    SENTINEL_POSITION = -1
    
    # Top of the ladder
    TOP_POSITION = 1

class PlayoffConstants:
    """Constants for the knockout playoffs."""
    
    # Players required per bracket format
    PLAYERS_REQUIRED = {
        'final': 2,
        'semis': 4,
        'quarters': 8,
    }
    
    # Round names per format, in playing order
    ROUND_NAMES = {
        'final': ['Final'],
        'semis': ['Semi Finals', 'Final'],
        'quarters': ['Quarter Finals', 'Semi Finals', 'Final'],
    }
    
    # First-round seed pairings, listed by bracket position.
    # 1 and 2 are kept on opposite halves of the draw.
    FIRST_ROUND_SEEDING = {
        'final': [(1, 2)],
        'semis': [(1, 4), (2, 3)],
        'quarters': [(1, 8), (4, 5), (2, 7), (3, 6)],
    }

class UIConstants:
    """Constants for notification embeds."""
    
    # Embed colors
    DEFAULT_EMBED_COLOR = 0x3498db  # Blue
    GOLD_COLOR = 0xffd700           # Champion
    ERROR_COLOR = 0xe74c3c          # Disputes, eliminations
    SUCCESS_COLOR = 0x2ecc71        # Accepted, advanced
    
    # Emoji for UI elements
    TROPHY_EMOJI = "🏆"
    TENNIS_EMOJI = "🎾"
