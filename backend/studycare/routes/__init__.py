"""
StudyCare Backend — API Routes Package
========================================

Route Inventory (all feature routes under /api, bearer token required
except register/login):
    - auth.py:       /api/auth        register, login, profile
    - chat.py:       /api/chat        tutoring sessions and messages
    - image.py:      /api/image       image upload + vision analysis
    - voice.py:      /api/voice       transcription, synthesis, voice chat
    - notes.py:      /api/notes       notes CRUD + AI summarize/explain/organize
    - symptom.py:    /api/symptom     educational symptom guidance
    - teacher.py:    /api/teacher     classes, rosters, stats (teacher)
    - student.py:    /api/student     join class, my classes (student)
    - pods.py:       /api/pods        study pods, messages, invitations
    - caregiver.py:  /api/caregiver   child linking and activity (caregiver)
    - health.py:     /health, /metrics

Routes stay thin: parse the request, call a service, wrap the result in
the {"success": true, "data": ...} envelope. Errors are raised as typed
exceptions and rendered by the handlers in main.py.
"""
