import sys

from trafficflow.app import main

if __name__ == "__main__":
    sys.exit(main())
