from chat_relay.main import run

run()
