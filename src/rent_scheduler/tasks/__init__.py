"""
Task subsystem.

Components:
- task_models.py: data structures (ScheduledTask) and scheduler errors
- task_scheduler.py: polling scheduler that runs due tasks and reschedules them
"""
