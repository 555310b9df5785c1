"""
StudyCare Backend — Services Layer
====================================

Service Inventory:
    Collaborators
    - LLMService / SpeechService (abstract): AI provider interfaces
    - GeminiService: chat, vision, transcription (Google Gemini)
    - OpenAISpeechService: text-to-speech
    - SupabaseAuthGateway: identity provider (sign-up, tokens, admin API)
    - StorageService: Supabase object storage for uploads

    Domain
    - ProfileService, AuthService, CaregiverService, ChatService,
      ImageService, VoiceService, NoteService, SymptomService,
      TeacherService, StudentService, PodService

    Ambient
    - TTLCache, MetricsCollector, CircuitBreaker

Each module exposes a ready-to-use singleton (`chat_service`, ...);
collaborators are constructor arguments so tests pass fakes.
"""
