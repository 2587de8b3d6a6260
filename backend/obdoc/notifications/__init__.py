"""Notifications module - event emitters for challenge notifications."""

from .emitter import NotificationEmitter, InMemoryNotificationEmitter, LoggingNotificationEmitter

__all__ = ['NotificationEmitter', 'InMemoryNotificationEmitter', 'LoggingNotificationEmitter']
