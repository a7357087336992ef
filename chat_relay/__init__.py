"""
실시간 채팅 릴레이 서버

WebSocket으로 연결된 클라이언트를 인증하고 채팅 메시지, 타이핑 상태,
접속자 수를 현재 접속 중인 클라이언트들에게 중계합니다.
"""

__version__ = "1.0.0"
