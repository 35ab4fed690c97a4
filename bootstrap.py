import logging

from tutoring.config import check_startup_settings
from tutoring.db import Base, engine


logging.basicConfig(level=logging.INFO, format='%(asctime)s %(levelname)s %(name)s %(message)s')
logger = logging.getLogger('bootstrap')


def main():
    warnings = check_startup_settings()
    Base.metadata.create_all(bind=engine)
    logger.info('Schema ready: tables=%s warnings=%s', sorted(Base.metadata.tables), len(warnings))


if __name__ == '__main__':
    main()
