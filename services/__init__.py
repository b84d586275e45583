"""
Services Package

Long-running application services: the WhaleTrackerService that owns the
current engine session, and the EventBus it publishes through.
"""
