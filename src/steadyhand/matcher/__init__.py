"""Matcher module - Fuzzy text matching."""

from .matcher import DEFAULT_THRESHOLD, best_match, rank, score, whole_score

__all__ = ["DEFAULT_THRESHOLD", "best_match", "rank", "score", "whole_score"]
