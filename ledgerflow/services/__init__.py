"""Engine services: calendar math, stores, recurrence, budgets and statistics."""
