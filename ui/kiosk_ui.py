"""
Simple text-based UI for the theater kiosk
"""
from typing import Any, Callable, Dict, List

from core.kiosk import TheaterKiosk


class KioskConsoleUI:
    """Text-based kiosk for one theater"""

    def __init__(self, kiosk: TheaterKiosk, theater_id: str,
                 input_func: Callable[[str], str] = input, output: Callable[..., None] = print):
        self.kiosk = kiosk
        self.theater_id = theater_id
        self.input = input_func
        self.print = output
        self.tab_id = "all"
        self._visible: List[Dict[str, Any]] = []

    def run(self):
        """Run the console kiosk"""
        self.print(f"Theater kiosk - {self.theater_id}")
        self.print("Commands: menu, tab <id>, add <no>, cart, pay, clear, refresh, quit")
        self._show_menu()

        while True:
            try:
                user_input = self.input("\n> ").strip()
            except EOFError:
                break

            command, _, argument = user_input.partition(" ")
            command = command.lower()
            if command in ("quit", "exit"):
                self.print("Thank you!")
                break
            elif command == "menu":
                self._show_menu()
            elif command == "refresh":
                self._show_menu(force_refresh=True)
            elif command == "tab":
                self.tab_id = argument.strip() or "all"
                self._show_menu()
            elif command == "add":
                self._add(argument.strip())
            elif command == "cart":
                self._show_cart()
            elif command == "clear":
                self.kiosk.clear_cart(self.theater_id)
                self.print("Cart cleared")
            elif command == "pay":
                self._pay()
            elif command:
                self.print("Unknown command")

        self.kiosk.leave_theater(self.theater_id)

    def _show_menu(self, force_refresh: bool = False):
        menu = self.kiosk.get_menu(self.theater_id, tab_id=self.tab_id, force_refresh=force_refresh)
        if not menu["success"]:
            self.print(f"Could not load the menu: {menu['error']} (type 'refresh' to retry)")
            return

        self.print("Tabs: " + ", ".join(f"{tab['name']} [{tab['id']}]" for tab in menu["tabs"]))
        if not menu["items"]:
            self.print("No items available right now.")
        self._visible = menu["items"]
        for number, item in enumerate(self._visible, start=1):
            size = f" {item['size_label']}" if item.get("size_label") else ""
            flag = "  (sold out)" if item["out_of_stock"] else ""
            in_cart = f"  x{item['in_cart']} in cart" if item["in_cart"] else ""
            self.print(f"{number:>3}. {item['name']}{size} - {item['selling_price']}{flag}{in_cart}")

    def _add(self, argument: str):
        try:
            item = self._visible[int(argument) - 1]
        except (ValueError, IndexError):
            self.print("Pick an item number from the menu")
            return

        result = self.kiosk.add_to_cart(self.theater_id, item["id"])
        if result["success"]:
            self.print(f"Added {item['name']}. Total: {result['display_total']}")
        else:
            self.print(f"Cannot add {item['name']}: {result['error']}")

    def _show_cart(self):
        cart = self.kiosk.get_cart_details(self.theater_id)
        if not cart["cart_items"]:
            self.print("Your cart is empty")
            return
        summary = cart["summary"]
        for line in summary["lines"]:
            self.print(f"- {line['name']} x{line['count']}: {line['line_subtotal']}")
        self.print(f"Subtotal: {summary['subtotal']}  Tax: {summary['tax']} "
                   f"(CGST {summary['cgst']} / SGST {summary['sgst']})")
        self.print(f"Total: {cart['display_total']}")

    def _pay(self):
        review = self.kiosk.proceed_to_payment(self.theater_id)
        if not review["success"]:
            self.print(review["error"])
            return
        self._show_cart()

        name = self.input("Name (enter to skip, 'back' to return): ").strip()
        if name.lower() == "back":
            self.kiosk.cancel_checkout(self.theater_id)
            return

        self.print("Processing payment...")
        result = self.kiosk.pay(self.theater_id, customer_name=name)
        if result["success"]:
            self.print(f"Order placed! {result['message']}")
            self._show_menu()
        else:
            self.print(f"Order failed: {result['error']}")
