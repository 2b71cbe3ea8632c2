"""
Overlay Assistant core package.

Provides:
- Gemini request engine with retry/backoff and credential-backed auth
- Input routing for speech, single OCR and batched OCR producers
- Prompt templates and plain-text normalisation of model output
"""
