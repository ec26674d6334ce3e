"""
Voice Pipeline for the voice assistant.

Per-request processing: STT -> LLM -> TTS
- transcription: Deepgram speech-to-text (skipped for text input)
- completion: Together AI chat completion with the persona system prompt
- synthesis: Neets text-to-speech, MP3 out

Each stage returns a StageSuccess or StageFailure; the pipeline stops at the
first failure. All behavior is observable via structured events.
"""
