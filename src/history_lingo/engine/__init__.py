"""Question evaluation and the lesson session state machine."""
