from coinpulse.main import run

run()
