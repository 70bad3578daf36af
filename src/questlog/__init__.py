"""Quest tracking backend: auth, quest membership, friendships and realtime chat."""
