"""
Session Store and Registry Tests
================================
"""

from mjpeg_relay.relay import ConnectionRegistry, SessionStore


class TestSessionStore:
    """Latest-frame-per-session semantics."""
    
    def test_get_unknown_session_is_none(self):
        store = SessionStore()
        assert store.get("nobody") is None
        assert "nobody" not in store
        assert len(store) == 0
    
    def test_put_replaces_previous_frame(self):
        store = SessionStore()
        store.put("s1", b"first")
        frame = store.put("s1", b"second")
        
        assert store.get("s1").data == b"second"
        assert frame.sequence == 2
        assert len(store) == 1
    
    def test_get_does_not_mutate(self):
        store = SessionStore()
        store.put("s1", b"data")
        
        assert store.get("s1") is store.get("s1")
        assert store.sessions() == ["s1"]
    
    def test_clear_removes_frame_and_resets_sequence(self):
        store = SessionStore()
        store.put("s1", b"a")
        store.put("s1", b"b")
        
        assert store.clear("s1") is True
        assert store.get("s1") is None
        assert store.clear("s1") is False
        assert store.put("s1", b"c").sequence == 1
    
    def test_sessions_are_independent(self):
        store = SessionStore()
        store.put("s1", b"one")
        store.put("s2", b"two")
        store.clear("s1")
        
        assert store.get("s2").data == b"two"
        assert store.sessions() == ["s2"]
    
    def test_frame_repr_omits_payload(self):
        store = SessionStore()
        frame = store.put("s1", b"\xff" * 5000)
        
        assert "size=5000" in repr(frame)
        assert "\\xff" not in repr(frame)


class TestConnectionRegistry:
    """Set membership per session."""
    
    def test_register_creates_set(self):
        registry = ConnectionRegistry()
        registry.register("s1", "a")
        registry.register("s1", "b")
        registry.register("s1", "a")
        
        assert registry.count("s1") == 2
        assert set(registry.members("s1")) == {"a", "b"}
    
    def test_unregister_deletes_empty_set(self):
        registry = ConnectionRegistry()
        registry.register("s1", "a")
        
        assert registry.unregister("s1", "a") is True
        assert "s1" not in registry
        assert registry.counts() == {}
    
    def test_unregister_twice_is_harmless(self):
        registry = ConnectionRegistry()
        registry.register("s1", "a")
        registry.unregister("s1", "a")
        
        assert registry.unregister("s1", "a") is False
        assert registry.unregister("never", "a") is False
    
    def test_members_is_a_snapshot(self):
        registry = ConnectionRegistry()
        registry.register("s1", "a")
        registry.register("s1", "b")
        
        seen = []
        for handle in registry.members("s1"):
            registry.unregister("s1", handle)
            registry.register("s1", handle + "-new")
            seen.append(handle)
        
        assert sorted(seen) == ["a", "b"]
        assert set(registry.members("s1")) == {"a-new", "b-new"}
    
    def test_pop_all(self):
        registry = ConnectionRegistry()
        registry.register("s1", "a")
        registry.register("s2", "b")
        
        assert registry.pop_all("s1") == ("a",)
        assert registry.counts() == {"s2": 1}
        assert registry.pop_all("s1") == ()
