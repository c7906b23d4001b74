# run.py
import os
from dotenv import load_dotenv
load_dotenv()

from oncotrack_pkg import create_app

config_name = os.environ.get('FLASK_ENV', 'development')
app = create_app(config_name)
app.logger.info(f"OncoTrack starting with '{config_name}' configuration.")

if __name__ == '__main__':
    app.run(host='0.0.0.0', port=int(os.environ.get('PORT', 5000)))
