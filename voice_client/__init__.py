"""
Conversation client for the voice assistant endpoint.

Holds the rolling transcript on the caller side and submits text or recorded
audio to POST /api/chat. Microphone capture, voice-activity detection and
playback belong to the host application.
"""
