# check for local development repo in script path and use it for imports
import os, sys
path_parts = os.path.dirname(os.path.realpath(__file__)).split(os.sep)
if "examples" in path_parts:
    sys.path.insert(0, os.sep.join(path_parts[:-path_parts[::-1].index("examples") - 1]))

import logging
import time
import treelink

class App(treelink.LinkListener):

    def __init__(self, endpoint):
        # set up the link (buffer is reused for every receive cycle)
        self.stream = treelink.TcpStream(endpoint)
        self.stream.subscribe(self)
        self.rx_buffer = bytearray(1024)

    def on_connected(self, link):
        print("[%.03f] CONNECTED: %s" % (time.time(), link))

    def on_disconnected(self, link):
        print("[%.03f] DISCONNECTED: %s (%s)" % (time.time(), link, link.get_error_string()))

    def on_rx_data(self, link, data, count):
        print("[%.03f] RX: [%s] (%d bytes)" % (time.time(), ' '.join(["%02X" % b for b in data]), count))

    def on_tx_data(self, link, data):
        print("[%.03f] TX: [%s]" % (time.time(), ' '.join(["%02X" % b for b in data])))

    def on_rx_error(self, link, error):
        print("[%.03f] ERROR: %s" % (time.time(), error))

def main():
    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")
    app = App(sys.argv[1] if len(sys.argv) > 1 else None)

    if not app.stream.connect():
        print("Unable to connect to %s: %s" % (app.stream, app.stream.get_error_string()))
        sys.exit(1)

    app.stream.start_continuous_receive(app.rx_buffer)
    while app.stream.is_open:
        time.sleep(0.25)

    # raises if the receive thread died from anything but a disconnection
    app.stream.join()

if __name__ == '__main__':
    try:
        main()
    except KeyboardInterrupt:
        print("Ctrl+C detected, terminating script")
        sys.exit(0)
