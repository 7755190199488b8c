"""chronotask: recurring tasks, change history and periodic task summaries."""
