"""
Settlement engine: payload normalization, the settlement state machine,
strategies and the executor that drives them.
"""
