"""Homework step-game tutor and topic-mastery session core."""
